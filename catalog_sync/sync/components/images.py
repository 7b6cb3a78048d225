# catalog_sync/sync/components/images.py
from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from catalog_sync.cache.transients import DAY_IN_SECONDS
from catalog_sync.result import ApiResult, HTTP, VALIDATION
from catalog_sync.sync.components.util import basename, chunked, slugify
from catalog_sync.sync.context import SyncContext
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger(__name__)

SCALED_SUFFIX = "-scaled"
SEARCH_BATCH_SIZE = 10
UPLOAD_BATCH_SIZE = 3
UPLOAD_ATTEMPTS = 3
UPLOAD_RETRY_DELAY = 1.0
UPLOAD_BATCH_PAUSE = 0.5

# ------------------------------------------------------------------------------
# Filename helpers
# ------------------------------------------------------------------------------

def strip_scaled(filename: str) -> str:
    """'photo-scaled.jpg' -> 'photo.jpg' (WP renames big uploads with -scaled)."""
    stem, ext = os.path.splitext(filename or "")
    if stem.endswith(SCALED_SUFFIX):
        stem = stem[: -len(SCALED_SUFFIX)]
    return stem + ext


def same_file(a: str, b: str) -> bool:
    a, b = (a or "").lower(), (b or "").lower()
    return bool(a) and (a == b or strip_scaled(a) == strip_scaled(b))


def transient_key(filename: str) -> str:
    return "img_" + hashlib.md5(filename.encode("utf-8")).hexdigest()


def _media_filename(item: dict) -> str:
    return basename(item.get("source_url") or "")


def _dedupe_preserve_order(items):
    seen = set()
    out = []
    for x in items or []:
        if not x or x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out


class ImageSynchronizer:
    """
    Finds or uploads media on the target store.

    A file already on the target is reused only when it is attached to the
    target product being synced; same-named files of other products are ignored.
    """

    def __init__(self, woo: WooTarget, ctx: SyncContext):
        self.woo = woo
        self.ctx = ctx
        self._session: Dict[str, int] = {}
        self._attached: Dict[int, Set[int]] = {}

    # ---- caches ----

    def _remember(self, filename: str, media_id: int) -> None:
        for name in {filename, strip_scaled(filename)}:
            self._session[name] = media_id
            self.ctx.image_ids[name] = media_id
        self.ctx.transients.set(transient_key(filename), media_id, DAY_IN_SECONDS)

    def _known(self, filename: str) -> Optional[int]:
        for cache in (self._session, self.ctx.image_ids):
            for name in (filename, strip_scaled(filename)):
                if name in cache:
                    return cache[name]
        return None

    # ---- attachment verification ----

    async def attached_ids(self, target_product_id: int) -> Set[int]:
        """Primary + gallery image ids of the target product (and its variations' images)."""
        tid = int(target_product_id)
        if tid in self._attached:
            return self._attached[tid]

        ids: Set[int] = set()
        res = await self.woo.get_product(tid)
        if res.ok and isinstance(res.value, dict):
            for img in res.value.get("images") or []:
                if isinstance(img, dict) and img.get("id"):
                    ids.add(int(img["id"]))
            if res.value.get("type") == "variable":
                var_res = await self.woo.get_variations(tid)
                variations = var_res.value if var_res.ok else []
                for v in variations:
                    img = v.get("image") if isinstance(v, dict) else None
                    if isinstance(img, dict) and img.get("id"):
                        ids.add(int(img["id"]))
        else:
            self.ctx.logger.warning("Could not load target product to verify images", {
                "target_product_id": tid, "error": res.message,
            })
        self._attached[tid] = ids
        return ids

    async def _verified(self, media_id, target_product_id: Optional[int]) -> bool:
        if not target_product_id or not media_id:
            return False
        return int(media_id) in await self.attached_ids(target_product_id)

    # ---- lookup ----

    async def _accept_candidates(self, filename: str, items: Iterable[dict],
                                 target_product_id: Optional[int]) -> Optional[int]:
        for item in items:
            if not same_file(_media_filename(item), filename) or not item.get("id"):
                continue
            if await self._verified(item["id"], target_product_id):
                self._remember(filename, int(item["id"]))
                self.ctx.logger.info("Image found on target store", {
                    "filename": filename, "media_id": item["id"],
                })
                return int(item["id"])
            self.ctx.logger.info("Same-named image belongs to another product, ignored", {
                "filename": filename, "media_id": item["id"], "target_product_id": target_product_id,
            })
        return None

    async def _from_transient(self, filename: str, target_product_id: Optional[int]) -> Optional[int]:
        cached = self.ctx.transients.get(transient_key(filename))
        if cached and await self._verified(cached, target_product_id):
            self._remember(filename, int(cached))
            return int(cached)
        return None

    async def find_existing(self, filename: str, target_product_id: Optional[int] = None) -> Optional[int]:
        known = self._known(filename)
        if known:
            return known

        cached = await self._from_transient(filename, target_product_id)
        if cached:
            return cached

        search = os.path.splitext(strip_scaled(filename))[0]
        res = await self.woo.search_media(search, per_page=10)
        if not res.ok:
            self.ctx.logger.warning("Image search failed", {"filename": filename, "error": res.message})
            return None
        return await self._accept_candidates(filename, res.value, target_product_id)

    # ---- upload ----

    async def _download(self, image_url: str, filename: str) -> ApiResult:
        res = await self.woo.download(image_url)
        if not res.ok:
            return res
        resp = res.value
        fd, tmp_path = tempfile.mkstemp(suffix=os.path.splitext(filename)[1])
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(resp.content)
            content = Path(tmp_path).read_bytes()
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        content_type = (
            mimetypes.guess_type(filename)[0]
            or resp.headers.get("Content-Type")
            or "application/octet-stream"
        )
        return ApiResult.success(content, content_type=content_type)

    async def upload(self, image_url: str, filename: str) -> ApiResult:
        self.ctx.logger.info("Downloading image", {"url": image_url})
        dl = await self._download(image_url, filename)
        if not dl.ok:
            self.ctx.logger.error("Image download failed", {"filename": filename, "error": dl.message})
            return dl

        last = ApiResult.fail(HTTP, "Upload not attempted")
        for attempt in range(1, UPLOAD_ATTEMPTS + 1):
            self.ctx.logger.info("Uploading image", {"filename": filename, "attempt": attempt})
            res = await self.woo.upload_media(dl.value, filename, dl.extra.get("content_type"))
            if res.ok and res.status == 201:
                try:
                    media = res.value.json()
                except ValueError:
                    media = {}
                media_id = media.get("id") if isinstance(media, dict) else None
                if isinstance(media_id, int) and media_id > 0:
                    self._remember(filename, media_id)
                    self.ctx.logger.success("Image uploaded", {"filename": filename, "media_id": media_id})
                    return ApiResult.success(media_id, status=201)
                last = ApiResult.fail(HTTP, "Upload response without media id", res.status)
            elif res.ok:
                last = ApiResult.fail(HTTP, "Unexpected upload status", res.status)
            else:
                last = res
            self.ctx.logger.warning("Image upload attempt failed", {
                "filename": filename, "attempt": attempt, "error": last.message,
            })
            if attempt < UPLOAD_ATTEMPTS:
                await self.ctx.sleep(UPLOAD_RETRY_DELAY)

        self.ctx.logger.error("Image upload gave up", {"filename": filename, "attempts": UPLOAD_ATTEMPTS})
        return last

    # ---- public API ----

    async def ensure_uploaded(self, image_url: str, target_product_id: Optional[int] = None) -> ApiResult:
        if not image_url:
            self.ctx.logger.warning("Empty image URL, skipped")
            return ApiResult.fail(VALIDATION, "Empty image URL")
        filename = basename(image_url)
        existing = await self.find_existing(filename, target_product_id)
        if existing:
            return ApiResult.success(existing)
        return await self.upload(image_url, filename)

    async def ensure_uploaded_batch(self, image_urls: List[str], target_product_id: Optional[int] = None) -> List[int]:
        ids, _ = await self.sync_batch(image_urls, target_product_id)
        return ids

    async def sync_batch(self, image_urls: List[str],
                         target_product_id: Optional[int] = None) -> Tuple[List[int], int]:
        """
        Resolve many images with one media search per batch of filenames, then
        upload what is still missing a few at a time. Failed images are left out.
        Returns the media ids (in URL order, deduplicated) and the number of URLs
        that got no id.
        """
        urls = _dedupe_preserve_order(image_urls)
        found: Dict[str, int] = {}
        pending: List[str] = []
        for url in urls:
            filename = basename(url)
            hit = self._known(filename) or await self._from_transient(filename, target_product_id)
            if hit:
                found[url] = hit
            else:
                pending.append(url)

        for batch in chunked(pending, SEARCH_BATCH_SIZE):
            names = [basename(u) for u in batch]
            slugs = _dedupe_preserve_order(
                s for n in names for s in (slugify(os.path.splitext(n)[0]),
                                           slugify(os.path.splitext(strip_scaled(n))[0]))
            )
            res = await self.woo.find_media_by_slugs(slugs)
            if not res.ok:
                self.ctx.logger.warning("Batch image search failed", {"files": names, "error": res.message})
                continue
            for url, name in zip(batch, names):
                hit = await self._accept_candidates(name, res.value, target_product_id)
                if hit:
                    found[url] = hit

        to_upload = [u for u in pending if u not in found]
        for i, batch in enumerate(chunked(to_upload, UPLOAD_BATCH_SIZE)):
            if i:
                await self.ctx.sleep(UPLOAD_BATCH_PAUSE)
            for url in batch:
                # an earlier upload may have covered the -scaled twin
                known = self._known(basename(url))
                if known:
                    found[url] = known
                    continue
                up = await self.upload(url, basename(url))
                if up.ok:
                    found[url] = up.value

        failed = len(urls) - len(found)
        if failed:
            self.ctx.logger.warning("Some images could not be synced", {"failed": failed, "total": len(urls)})
        return _dedupe_preserve_order(found[u] for u in urls if u in found), failed

    async def prepare_variation_images(self, main_url: Optional[str], gallery_urls: List[str],
                                       target_product_id: Optional[int] = None) -> dict:
        """{'main': id, 'gallery': [ids]} for one variation; missing parts are omitted."""
        images: dict = {}
        if main_url:
            res = await self.ensure_uploaded(main_url, target_product_id)
            if res.ok:
                images["main"] = res.value
        if gallery_urls:
            gallery = await self.ensure_uploaded_batch(gallery_urls, target_product_id)
            if gallery:
                images["gallery"] = gallery
        return images
