from conftest import spot_doc

from spotmap.dedup.merge import plan_original_updates, union_preserving_order, validate_duplicate_pair
from spotmap.domain.models import Actor, AuditAction, DuplicateFailure, MergeOptions, Spot
from spotmap.store.base import StoreError


def _seed(store, **docs):
    for doc_id, data in docs.items():
        store.set("spots", doc_id, data)


def test_validation_order():
    native = Spot(id="a", name="A")
    other = Spot(id="b", name="B")
    assert validate_duplicate_pair("b", "a", duplicate=None, original=None) is DuplicateFailure.ORIGINAL_NOT_FOUND
    assert validate_duplicate_pair("b", "a", duplicate=None, original=native) is DuplicateFailure.DUPLICATE_NOT_FOUND
    assert validate_duplicate_pair("a", "a", duplicate=native, original=native) is DuplicateFailure.SELF_REFERENCE

    chained = Spot(id="a", name="A", duplicate_of="z")
    assert validate_duplicate_pair("b", "a", duplicate=other, original=chained) is DuplicateFailure.CHAIN_NOT_ALLOWED

    imported = Spot(id="a", name="A", spot_source="parkour.org")
    assert (
        validate_duplicate_pair("b", "a", duplicate=other, original=imported)
        is DuplicateFailure.ORIGINAL_MUST_BE_NATIVE
    )
    assert validate_duplicate_pair("b", "a", duplicate=other, original=native) is None


def test_union_preserves_order_and_drops_repeats():
    assert union_preserving_order(["a", "b"], ["b", "c", "a", "d"]) == ["a", "b", "c", "d"]
    assert union_preserving_order([], ["x", "x"]) == ["x"]


def test_plan_with_no_options_is_empty():
    original = Spot(name="A", image_urls=["1"])
    duplicate = Spot(name="B", image_urls=["2"], latitude=1.0, longitude=1.0)
    assert plan_original_updates(original, duplicate, MergeOptions()) == {}


def test_plan_transfers_and_overwrites():
    original = Spot(name="A", description="old", image_urls=["1", "2"], city="Lyon", latitude=45.0, longitude=4.0)
    duplicate = Spot(
        name="B",
        description="",
        image_urls=["2", "3"],
        youtube_video_ids=["yt1"],
        city="Paris",
        latitude=0.0,
        longitude=2.35,
        spot_features=["wall"],
    )
    options = MergeOptions(
        transfer_photos=True,
        transfer_youtube_links=True,
        overwrite_name=True,
        overwrite_description=True,
        overwrite_location=True,
        overwrite_spot_attributes=True,
    )

    updates = plan_original_updates(original, duplicate, options)

    assert updates["imageUrls"] == ["1", "2", "3"]
    assert updates["youtubeVideoIds"] == ["yt1"]
    assert updates["name"] == "B"
    # Empty description and a zero latitude are not copied over.
    assert "description" not in updates
    assert "latitude" not in updates and "longitude" not in updates
    assert updates["city"] == "Paris"
    assert updates["spotFeatures"] == ["wall"]
    assert "spotAccess" not in updates


def test_mark_as_duplicate_updates_both_and_audits(service, store):
    _seed(
        store,
        orig=spot_doc(name="Original", image_urls=["a.jpg"], latitude=52.0, longitude=4.0),
        dup=spot_doc(name="Copy", image_urls=["a.jpg", "b.jpg"], latitude=52.1, longitude=4.1, spot_source="import"),
    )
    options = MergeOptions(transfer_photos=True, overwrite_location=True)

    outcome = service.mark_as_duplicate("dup", "orig", options, actor=Actor(user_id="u1", user_name="Mod"))

    assert outcome.success
    assert outcome.failure is None
    orig = store.raw("spots", "orig")
    dup = store.raw("spots", "dup")
    assert dup["duplicateOf"] == "orig"
    assert orig["imageUrls"] == ["a.jpg", "b.jpg"]
    assert (orig["latitude"], orig["longitude"]) == (52.1, 4.1)
    assert orig["geohash"].startswith("u1")
    assert orig["duplicateOf"] is None

    entries = service.audit.get_for_spot("dup")
    assert len(entries) == 1
    assert entries[0].action is AuditAction.MARKED_DUPLICATE
    assert entries[0].user_id == "u1"
    assert entries[0].metadata["originalSpotId"] == "orig"
    assert entries[0].metadata["transferPhotos"] is True
    assert entries[0].metadata["overwriteName"] is False


def test_mark_as_duplicate_is_idempotent(service, store):
    _seed(
        store,
        orig=spot_doc(name="Original", image_urls=["a.jpg"]),
        dup=spot_doc(name="Copy", image_urls=["b.jpg"]),
    )
    options = MergeOptions(transfer_photos=True)

    first = service.mark_as_duplicate("dup", "orig", options)
    after_first = store.raw("spots", "orig")
    second = service.mark_as_duplicate("dup", "orig", options)
    after_second = store.raw("spots", "orig")

    assert first.success and second.success
    assert after_first["imageUrls"] == after_second["imageUrls"] == ["a.jpg", "b.jpg"]
    assert "imageUrls" not in second.original_updates
    assert store.raw("spots", "dup")["duplicateOf"] == "orig"


def test_mark_as_duplicate_rejects_chains_and_publishes_error(service, store, events):
    _seed(
        store,
        a=spot_doc(name="A"),
        b=spot_doc(name="B", duplicate_of="a"),
        c=spot_doc(name="C"),
    )
    seen = []
    events.subscribe("error", seen.append)

    outcome = service.mark_as_duplicate("c", "b")

    assert not outcome.success
    assert outcome.failure is DuplicateFailure.CHAIN_NOT_ALLOWED
    assert outcome.reason == DuplicateFailure.CHAIN_NOT_ALLOWED.message
    assert store.raw("spots", "c")["duplicateOf"] is None
    assert seen and seen[0].payload["operation"] == "mark_as_duplicate"


def test_mark_as_duplicate_self_reference(service, store):
    _seed(store, a=spot_doc(name="A"))
    outcome = service.mark_as_duplicate("a", "a")
    assert outcome.failure is DuplicateFailure.SELF_REFERENCE


def test_failed_commit_leaves_both_spots_untouched(service, store):
    _seed(
        store,
        orig=spot_doc(name="Original", image_urls=["a.jpg"]),
        dup=spot_doc(name="Copy", image_urls=["b.jpg"]),
    )

    def fault(op):
        if op == "commit":
            raise StoreError("unavailable")

    store.fault = fault

    outcome = service.mark_as_duplicate("dup", "orig", MergeOptions(transfer_photos=True, overwrite_name=True))

    store.fault = None
    assert not outcome.success
    assert outcome.failure is None
    assert "unavailable" in outcome.error
    assert store.raw("spots", "orig")["imageUrls"] == ["a.jpg"]
    assert store.raw("spots", "orig")["name"] == "Original"
    assert store.raw("spots", "dup")["duplicateOf"] is None
    assert service.audit.get_for_spot("dup") == []


def test_duplicates_of_spot_and_selection_search(service, store):
    _seed(
        store,
        orig=spot_doc(name="Skatepark Noord", city="Amsterdam"),
        other=spot_doc(name="Museum steps", city="Amsterdam"),
        dup=spot_doc(name="Skatepark N", duplicate_of="orig"),
    )

    assert [s.id for s in service.get_duplicates_of_spot("orig")] == ["dup"]

    candidates = service.search_spots_for_duplicate_selection(exclude_spot_id="other")
    assert sorted(s.id for s in candidates) == ["orig"]

    matched = service.search_spots_for_duplicate_selection(text="museum")
    assert [s.id for s in matched] == ["other"]
