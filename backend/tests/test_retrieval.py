"""Tests for image recommendations and chunk search."""

import pytest

from conftest import make_png
from grounding_index.core.errors import InvalidQueryError
from grounding_index.retrieval.search import CONTEXT_SEPARATOR, RetrievalService
from grounding_index.retrieval.vector_index import CHUNKS

PHOTOS = ["graduation_ceremony.png", "beach_sunset.png", "city_skyline.png", "graduation_cap_toss.png"]


@pytest.fixture
def indexed(materials, coordinator):
    def _indexed(owner: str, name: str, text: str):
        material = materials.upload(owner, name, text.encode(), "text/plain")
        coordinator.process(material.id)
        return material

    return _indexed


def test_recommendations_rank_matching_description_first(images, retrieval) -> None:
    for name in PHOTOS:
        images.upload("owner-a", name, make_png(), "image/png")
    images.upload("owner-b", "graduation_ceremony.png", make_png(), "image/png")

    results = retrieval.recommend("owner-a", "graduation ceremony", top_n=3)

    assert len(results) == 3
    assert results[0].file_name == "graduation_ceremony.png"
    assert "graduation ceremony" in results[0].description
    assert [r.distance for r in results] == sorted(r.distance for r in results)
    owned = {image.id for image in images.list("owner-a")}
    assert all(result.id in owned for result in results)


def test_recommendations_for_owner_without_images(images, retrieval) -> None:
    images.upload("owner-a", "beach_sunset.png", make_png(), "image/png")
    assert retrieval.recommend("owner-b", "beach") == []


@pytest.mark.parametrize("query", ["", "   ", None])
def test_blank_queries_are_rejected(retrieval, query) -> None:
    with pytest.raises(InvalidQueryError):
        retrieval.recommend("owner", query)
    with pytest.raises(InvalidQueryError):
        retrieval.search_chunks("owner", query)


def test_chunk_search_returns_passages_with_file_names(indexed, retrieval) -> None:
    indexed("owner", "parking.txt", "Visitor parking is in lots B and C near the stadium entrance.")
    indexed("owner", "catering.txt", "The reception serves coffee, cake and sandwiches in the courtyard.")

    results = retrieval.search_chunks("owner", "where is visitor parking", top_n=1)

    assert len(results) == 1
    assert results[0].file_name == "parking.txt"
    assert results[0].meta["ordinal"] == 0


def test_chunk_search_ignores_materials_that_are_not_indexed(indexed, materials, vectors, embedder, retrieval) -> None:
    good = indexed("owner", "good.txt", "Shuttle buses run every fifteen minutes from lot C.")
    pending = materials.upload("owner", "pending.txt", b"Shuttle buses are cancelled today.", "text/plain")
    # Leftover rows of an attempt that never reached INDEXED.
    vectors.insert("owner", pending.id, "Shuttle buses are cancelled today.", embedder.embed("shuttle buses"), collection=CHUNKS)

    results = retrieval.search_chunks("owner", "shuttle buses", top_n=10)

    assert {r.material_id for r in results} == {good.id}


def test_chunk_search_material_filter(indexed, retrieval) -> None:
    first = indexed("owner", "a.txt", "Registration opens at eight in the morning.")
    indexed("owner", "b.txt", "Registration closes at noon on Friday.")

    results = retrieval.search_chunks("owner", "registration", material_ids=[first.id])
    assert {r.material_id for r in results} == {first.id}
    assert retrieval.search_chunks("owner", "registration", material_ids=[]) == []


def test_top_n_defaults_and_clamping(indexed, metadata, vectors, embedder, settings) -> None:
    for i in range(4):
        indexed("owner", f"note{i}.txt", f"Reminder number {i} about the graduation rehearsal.")
    service = RetrievalService(metadata, vectors, embedder, settings.model_copy(update={"default_top_n": 2, "max_top_n": 3}))

    assert len(service.search_chunks("owner", "graduation rehearsal")) == 2
    assert len(service.search_chunks("owner", "graduation rehearsal", top_n=50)) == 3
    assert service.search_chunks("owner", "graduation rehearsal", top_n=0) == []


def test_grounding_context_joins_passages(indexed, retrieval) -> None:
    indexed("owner", "dress.txt", "Gowns are collected at the bookstore before noon.")
    indexed("owner", "photos.txt", "Official photographers are stationed by the fountain.")

    context = retrieval.grounding_context("owner", "gowns bookstore", top_n=2)

    blocks = context.split(CONTEXT_SEPARATOR)
    assert len(blocks) == 2
    assert blocks[0] == "[dress.txt]\nGowns are collected at the bookstore before noon."
    assert retrieval.grounding_context("owner", "gowns", material_ids=[]) == ""
