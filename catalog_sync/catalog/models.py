from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class Term(BaseModel):
    id: Optional[int] = None
    name: str
    slug: str = ""


class SourceAttribute(BaseModel):
    name: str
    taxonomy: Optional[str] = Field(None, description="e.g. 'pa_color' for global attributes")
    options: List[str] = Field(default_factory=list)
    position: int = 0
    visible: bool = True
    variation: bool = False


class SourceProduct(BaseModel):
    id: int
    name: str
    sku: str = ""
    type: str = "simple"
    status: str = "publish"
    regular_price: Optional[str] = ""
    sale_price: Optional[str] = ""
    description: str = ""
    short_description: str = ""
    stock_status: str = "instock"
    manage_stock: bool = False
    stock_quantity: Optional[int] = None
    categories: List[Term] = Field(default_factory=list)
    tags: List[Term] = Field(default_factory=list)
    attributes: List[SourceAttribute] = Field(default_factory=list)
    image_id: Optional[int] = None
    gallery_image_ids: List[int] = Field(default_factory=list)
    variation_ids: List[int] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "allow"

    @property
    def is_variable(self) -> bool:
        return self.type == "variable"


class SourceVariation(BaseModel):
    id: int
    parent_id: int
    sku: str = ""
    # keys as stored by the source store, e.g. 'attribute_pa_color' or 'pa_color'
    attributes: Dict[str, str] = Field(default_factory=dict)
    regular_price: Optional[str] = ""
    sale_price: Optional[str] = ""
    description: str = ""
    stock_status: str = "instock"
    manage_stock: bool = False
    stock_quantity: Optional[int] = None
    weight: Optional[str] = ""
    length: Optional[str] = ""
    width: Optional[str] = ""
    height: Optional[str] = ""
    image_id: Optional[int] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "allow"


class SyncStep(BaseModel):
    name: str       # images | product | variations | prices | stock
    status: str     # active | completed | error
    message: str = ""


class SyncResult(BaseModel):
    success: bool = True
    action: str = ""
    target_id: Optional[int] = None
    steps: List[SyncStep] = Field(default_factory=list)
