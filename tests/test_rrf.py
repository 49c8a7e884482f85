import pytest

from course_rag.retrieval.models import SearchResult
from course_rag.retrieval.rrf import reciprocal_rank_fusion


def _hit(id, chunk_index=0, similarity=0.9, content=None):
    return SearchResult(
        id=id,
        course_id="cs101",
        document_type="notes",
        file_name="notes.txt",
        chunk_index=chunk_index,
        content=content or f"content of {id}",
        similarity=similarity,
    )


def test_items_in_several_lists_rank_first():
    a, b, c, d = _hit("a"), _hit("b"), _hit("c"), _hit("d")

    fused = reciprocal_rank_fusion([[a, b, c], [c, d, a]], k=60)

    assert [r.id for r in fused] == ["a", "c", "b", "d"]
    assert fused[0].rrf_score == pytest.approx(1 / 61 + 1 / 63)
    assert fused[1].rrf_score == pytest.approx(1 / 63 + 1 / 61)
    assert fused[2].rrf_score == pytest.approx(1 / 62)
    assert fused[3].rrf_score == pytest.approx(1 / 62)


def test_single_list_keeps_its_order():
    hits = [_hit("x"), _hit("y"), _hit("z")]

    fused = reciprocal_rank_fusion([hits])

    assert [r.id for r in fused] == ["x", "y", "z"]


def test_same_id_different_chunk_index_are_distinct():
    fused = reciprocal_rank_fusion([[_hit("doc", 0), _hit("doc", 1)]])

    assert len(fused) == 2
    assert {r.key for r in fused} == {"doc-0", "doc-1"}


def test_first_occurrence_payload_is_kept():
    first = _hit("a", similarity=0.91, content="first copy")
    second = _hit("a", similarity=0.55, content="second copy")

    fused = reciprocal_rank_fusion([[first], [second]])

    assert len(fused) == 1
    assert fused[0].content == "first copy"
    assert fused[0].similarity == 0.91
    assert fused[0].rrf_score == pytest.approx(2 / 61)


def test_fusion_is_deterministic():
    lists = [[_hit("a"), _hit("b")], [_hit("b"), _hit("a")], [_hit("c")]]

    first = reciprocal_rank_fusion(lists)
    second = reciprocal_rank_fusion(lists)

    assert [r.key for r in first] == [r.key for r in second]


def test_empty_input():
    assert reciprocal_rank_fusion([]) == []
    assert reciprocal_rank_fusion([[], []]) == []
