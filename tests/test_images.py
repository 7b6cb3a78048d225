import httpx

from catalog_sync.sync.components.images import ImageSynchronizer, same_file, strip_scaled, transient_key

from conftest import MEDIA_URL, wc

SRC = "https://source.test/wp-content/uploads"


def media_item(mid, filename):
    return {"id": mid, "source_url": f"https://target.test/wp-content/uploads/2024/05/{filename}"}


def mock_download(router, filename):
    return router.get(f"{SRC}/{filename}").mock(
        return_value=httpx.Response(200, content=b"\xff\xd8fake", headers={"Content-Type": "image/jpeg"})
    )


def test_scaled_suffix_helpers():
    assert strip_scaled("photo-scaled.jpg") == "photo.jpg"
    assert same_file("Photo-scaled.JPG", "photo.jpg")
    assert same_file("photo.jpg", "photo-scaled.jpg")
    assert not same_file("photo.jpg", "photo2.jpg")


async def test_same_named_image_of_other_product_is_not_reused(router, woo, ctx):
    router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[media_item(55, "shoe.jpg")]))
    router.get(wc("products/100")).mock(
        return_value=httpx.Response(200, json={"id": 100, "type": "simple", "images": [{"id": 12}]})
    )
    mock_download(router, "shoe.jpg")
    upload = router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"id": 77}))

    res = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/shoe.jpg", target_product_id=100)

    assert res.ok
    assert res.value == 77
    assert upload.call_count == 1
    sent = upload.calls.last.request
    assert sent.headers["Content-Disposition"] == 'attachment; filename="shoe.jpg"'
    assert sent.headers["Content-Type"] == "image/jpeg"
    assert sent.content == b"\xff\xd8fake"


async def test_attached_image_is_reused(router, woo, ctx):
    router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[media_item(55, "shoe-scaled.jpg")]))
    router.get(wc("products/100")).mock(
        return_value=httpx.Response(200, json={"id": 100, "type": "simple", "images": [{"id": 55}]})
    )
    upload = router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"id": 77}))

    res = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/shoe.jpg", target_product_id=100)

    assert res.value == 55
    assert upload.call_count == 0
    assert ctx.transients.get(transient_key("shoe.jpg")) == 55


async def test_variation_image_counts_as_attached(router, woo, ctx):
    router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[media_item(66, "red.jpg")]))
    router.get(wc("products/100")).mock(
        return_value=httpx.Response(200, json={"id": 100, "type": "variable", "images": []})
    )
    router.get(wc("products/100/variations")).mock(
        return_value=httpx.Response(200, json=[{"id": 101, "image": {"id": 66}}])
    )

    res = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/red.jpg", target_product_id=100)

    assert res.value == 66


async def test_without_target_hint_candidates_are_never_trusted(router, woo, ctx):
    router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[media_item(55, "shoe.jpg")]))
    mock_download(router, "shoe.jpg")
    router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"id": 78}))

    res = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/shoe.jpg")

    assert res.value == 78


async def test_transient_hit_skips_search(router, woo, ctx):
    ctx.transients.set(transient_key("shoe.jpg"), 55)
    search = router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[]))
    router.get(wc("products/100")).mock(
        return_value=httpx.Response(200, json={"id": 100, "type": "simple", "images": [{"id": 55}]})
    )

    res = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/shoe.jpg", target_product_id=100)

    assert res.value == 55
    assert search.call_count == 0


async def test_upload_is_retried_with_short_delay(router, woo, ctx, sleeps):
    mock_download(router, "bag.png")
    upload = router.post(MEDIA_URL).mock(side_effect=[
        httpx.Response(500, json={"message": "busy"}),
        httpx.Response(201, json={"id": 90}),
    ])
    images = ImageSynchronizer(woo, ctx)

    res = await images.upload(f"{SRC}/bag.png", "bag.png")

    assert res.value == 90
    assert upload.call_count == 2
    assert sleeps.calls == [1.0]


async def test_upload_without_id_is_a_failure(router, woo, ctx):
    mock_download(router, "bag.png")
    upload = router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"code": "weird"}))

    res = await ImageSynchronizer(woo, ctx).upload(f"{SRC}/bag.png", "bag.png")

    assert not res.ok
    assert upload.call_count == 3


async def test_batch_uses_one_search_and_skips_failures(router, woo, ctx, sleeps, log_store):
    search = router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[
        media_item(1, "a.jpg"),
        media_item(2, "b-scaled.jpg"),
    ]))
    router.get(wc("products/100")).mock(
        return_value=httpx.Response(200, json={"id": 100, "type": "simple", "images": [{"id": 1}, {"id": 2}]})
    )
    mock_download(router, "c.jpg")
    router.get(f"{SRC}/d.jpg").mock(return_value=httpx.Response(404))
    router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"id": 3}))

    urls = [f"{SRC}/a.jpg", f"{SRC}/b.jpg", f"{SRC}/c.jpg", f"{SRC}/d.jpg", f"{SRC}/a.jpg"]
    ids = await ImageSynchronizer(woo, ctx).ensure_uploaded_batch(urls, target_product_id=100)

    assert ids == [1, 2, 3]
    assert search.call_count == 1
    slugs = search.calls.last.request.url.params["slug"].split(",")
    assert {"a", "b", "c", "d"} <= set(slugs)
    warning = next(e for e in log_store.entries(limit=200) if e["message"] == "Some images could not be synced")
    assert warning["context"]["failed"] == 1


async def test_shared_run_map_avoids_second_lookup(router, woo, ctx):
    router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[]))
    mock_download(router, "shoe.jpg")
    upload = router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"id": 77}))

    first = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/shoe.jpg", 100)
    second = await ImageSynchronizer(woo, ctx).ensure_uploaded(f"{SRC}/shoe.jpg", 100)

    assert first.value == second.value == 77
    assert upload.call_count == 1


async def test_scaled_twin_counts_as_synced(router, woo, ctx):
    router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[]))
    mock_download(router, "p.jpg")
    upload = router.post(MEDIA_URL).mock(return_value=httpx.Response(201, json={"id": 7}))

    ids, failed = await ImageSynchronizer(woo, ctx).sync_batch([f"{SRC}/p.jpg", f"{SRC}/p-scaled.jpg"])

    assert ids == [7]
    assert failed == 0
    assert upload.call_count == 1


async def test_known_twins_need_no_requests(router, woo, ctx):
    ctx.image_ids["p.jpg"] = 7
    search = router.get(MEDIA_URL).mock(return_value=httpx.Response(200, json=[]))

    ids, failed = await ImageSynchronizer(woo, ctx).sync_batch([f"{SRC}/p.jpg", f"{SRC}/p-scaled.jpg"])

    assert (ids, failed) == ([7], 0)
    assert search.call_count == 0
