#==========================================================================================
# # woocommerce.py
# Target store API interface.
# Products, variations, categories, attributes/terms (wc/v3, key/secret query auth)
# and media (wp/v2, Basic auth with the WP application password).
#==========================================================================================
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from catalog_sync.config import TargetConfig
from catalog_sync.result import ApiResult
from catalog_sync.woo.http_client import RetryClient, TIMEOUT_METADATA

logger = logging.getLogger("uvicorn.error")

PER_PAGE = 100
JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class WooTarget:
    def __init__(self, config: TargetConfig, http: RetryClient):
        self.config = config
        self.http = http

    # ---- plumbing ----

    def wc_url(self, path: str) -> str:
        return f"{self.config.wc_api_root}/{path.lstrip('/')}"

    async def _wc(self, method: str, path: str, body: Any = None, params: Optional[dict] = None,
                  timeout_hint: Optional[float] = None) -> ApiResult:
        query = dict(self.config.key_params)
        query.update(params or {})
        return await self.http.request(
            self.wc_url(path), method, headers=JSON_HEADERS, body=body,
            timeout_hint=timeout_hint, params=query,
        )

    async def _wc_list(self, path: str, params: Optional[dict] = None) -> ApiResult:
        """GET a list endpoint; a non-list body counts as empty."""
        res = await self._wc("GET", path, params=params)
        if res.ok and not isinstance(res.value, list):
            res.value = []
        return res

    async def _wc_all(self, path: str) -> List[dict]:
        """Fetch every page of a list endpoint."""
        out: List[dict] = []
        page = 1
        while True:
            res = await self._wc_list(path, {"per_page": PER_PAGE, "page": page})
            if not res.ok:
                logger.error(f"[WC] {path} page {page} failed: {res.message}")
                break
            batch = res.value
            if not batch:
                break
            out.extend(batch)
            if len(batch) < PER_PAGE:
                break
            page += 1
        return out

    # ---- Products ----

    async def get_product(self, product_id: int) -> ApiResult:
        return await self._wc("GET", f"products/{int(product_id)}")

    async def find_products(self, **params) -> ApiResult:
        """Search products, e.g. ``sku=...`` or ``search=...``."""
        return await self._wc_list("products", params)

    async def create_product(self, payload: Dict[str, Any]) -> ApiResult:
        return await self._wc("POST", "products", body=payload)

    async def update_product(self, product_id: int, payload: Dict[str, Any]) -> ApiResult:
        return await self._wc("PUT", f"products/{int(product_id)}", body=payload)

    # ---- Variations ----

    async def get_variations(self, product_id: int) -> ApiResult:
        return await self._wc_list(f"products/{int(product_id)}/variations", {"per_page": PER_PAGE})

    async def generate_variations(self, product_id: int) -> ApiResult:
        return await self._wc("POST", f"products/{int(product_id)}/variations/generate", body={"delete": False})

    async def update_variation(self, product_id: int, variation_id: int, payload: Dict[str, Any]) -> ApiResult:
        return await self._wc("PUT", f"products/{int(product_id)}/variations/{int(variation_id)}", body=payload)

    # ---- Categories / tags ----

    async def find_categories(self, **params) -> ApiResult:
        return await self._wc_list("products/categories", params)

    async def find_tags(self, **params) -> ApiResult:
        return await self._wc_list("products/tags", params)

    # ---- Attributes ----

    async def get_attributes(self) -> List[dict]:
        return await self._wc_all("products/attributes")

    async def get_attribute_terms(self, attribute_id: int) -> List[dict]:
        return await self._wc_all(f"products/attributes/{int(attribute_id)}/terms")

    # ---- Media (WordPress auth, WP App Password) ----

    async def search_media(self, search: str, per_page: int = 10) -> ApiResult:
        res = await self.http.request(
            self.config.wp_media_url, "GET",
            headers={"Accept": "application/json"},
            params={"search": search, "per_page": per_page},
            auth=self.config.basic_auth,
            timeout_hint=TIMEOUT_METADATA,
        )
        if res.ok and not isinstance(res.value, list):
            res.value = []
        return res

    async def find_media_by_slugs(self, slugs: List[str]) -> ApiResult:
        """One request for many files: wp/v2 matches any of the comma separated slugs."""
        res = await self.http.request(
            self.config.wp_media_url, "GET",
            headers={"Accept": "application/json"},
            params={"slug": ",".join(slugs), "per_page": PER_PAGE},
            auth=self.config.basic_auth,
            timeout_hint=TIMEOUT_METADATA,
        )
        if res.ok and not isinstance(res.value, list):
            res.value = []
        return res

    async def upload_media(self, content: bytes, filename: str, content_type: str) -> ApiResult:
        headers = {
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Type": content_type or "application/octet-stream",
        }
        return await self.http.request(
            self.config.wp_media_url, "POST", headers=headers,
            content=content, auth=self.config.basic_auth, raw=True, attempts=1,
        )

    async def download(self, url: str) -> ApiResult:
        return await self.http.request(url, "GET", raw=True, timeout_hint=60.0)

    # ---- Connection test ----

    async def ping_rest(self) -> ApiResult:
        return await self._wc("GET", "products", params={"per_page": 1})

    async def ping_media(self) -> ApiResult:
        return await self.search_media("", per_page=1)
