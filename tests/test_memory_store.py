import pytest

from course_rag.db.memory_store import InMemoryVectorStore
from course_rag.documents.models import DocumentKey


async def _seed(store, file_name, vectors, course_id="cs101", user_id="user-1", document_type="notes"):
    key = DocumentKey(user_id=user_id, file_name=file_name, course_id=course_id)
    return await store.add_chunks(
        key,
        document_type,
        chunk_indices=list(range(len(vectors))),
        contents=[f"{file_name} #{i}" for i in range(len(vectors))],
        embeddings=vectors,
        metadatas=[{"position": i} for i in range(len(vectors))],
    )


class TestNearestChunks:
    @pytest.mark.asyncio
    async def test_ranks_by_cosine_similarity(self):
        store = InMemoryVectorStore()
        await _seed(store, "a.txt", [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])

        results = await store.nearest_chunks([2.0, 0.0], user_id="user-1", limit=3)

        assert [r.chunk_index for r in results] == [0, 2, 1]
        assert results[0].similarity == pytest.approx(1.0)
        assert results[1].similarity == pytest.approx(2 ** -0.5)
        assert results[2].similarity == pytest.approx(0.0)
        assert results[0].metadata == {"position": 0}

    @pytest.mark.asyncio
    async def test_limit_applies(self):
        store = InMemoryVectorStore()
        await _seed(store, "a.txt", [[1.0, 0.0]] * 5)

        assert len(await store.nearest_chunks([1.0, 0.0], user_id="user-1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_scoped_to_user_and_course(self):
        store = InMemoryVectorStore()
        await _seed(store, "mine.txt", [[1.0, 0.0]], course_id="cs101")
        await _seed(store, "other-course.txt", [[1.0, 0.0]], course_id="ma201")
        await _seed(store, "theirs.txt", [[1.0, 0.0]], user_id="user-2")

        in_course = await store.nearest_chunks([1.0, 0.0], user_id="user-1", course_id="cs101")
        all_mine = await store.nearest_chunks([1.0, 0.0], user_id="user-1")

        assert [r.file_name for r in in_course] == ["mine.txt"]
        assert {r.file_name for r in all_mine} == {"mine.txt", "other-course.txt"}

    @pytest.mark.asyncio
    async def test_empty_store(self):
        store = InMemoryVectorStore()

        assert await store.nearest_chunks([1.0], user_id="user-1") == []


class TestDocuments:
    @pytest.mark.asyncio
    async def test_list_count_get_delete(self):
        store = InMemoryVectorStore()
        await _seed(store, "a.txt", [[1.0, 0.0]] * 3, document_type="syllabus")
        await _seed(store, "b.txt", [[0.0, 1.0]] * 2)

        documents = await store.list_documents("user-1")
        assert {d.file_name: d.chunk_count for d in documents} == {"a.txt": 3, "b.txt": 2}
        assert await store.count_chunks("user-1") == 5

        key = DocumentKey(user_id="user-1", file_name="a.txt", course_id="cs101")
        chunks = await store.get_document_chunks(key)
        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert chunks[0].document_type == "syllabus"

        assert await store.delete_document(key) == 3
        assert await store.get_document_chunks(key) == []
        assert await store.count_chunks("user-1") == 2

    @pytest.mark.asyncio
    async def test_first_chunk_id_is_chunk_zero(self):
        store = InMemoryVectorStore()
        ids = await _seed(store, "a.txt", [[1.0, 0.0]] * 3)

        (summary,) = await store.list_documents("user-1")

        assert summary.first_chunk_id == ids[0]

    @pytest.mark.asyncio
    async def test_neighbors_are_ordered_by_position(self):
        store = InMemoryVectorStore()
        await _seed(store, "a.txt", [[1.0, 0.0]] * 6)

        chunks = await store.get_neighbor_chunks("user-1", "cs101", "a.txt", [4, 1, 9])

        assert [c.chunk_index for c in chunks] == [1, 4]

    @pytest.mark.asyncio
    async def test_mismatched_columns_are_rejected(self):
        store = InMemoryVectorStore()
        key = DocumentKey(user_id="user-1", file_name="a.txt")

        with pytest.raises(ValueError):
            await store.add_chunks(key, "notes", [0], ["a", "b"], [[1.0]])


class TestCourseScope:
    @pytest.mark.asyncio
    async def test_blank_course_means_every_course(self):
        store = InMemoryVectorStore()
        await _seed(store, "a.txt", [[1.0, 0.0]], course_id="cs101")
        await _seed(store, "b.txt", [[1.0, 0.0]] * 2, course_id="ma201")

        assert await store.count_chunks("user-1", "") == 3
        assert len(await store.nearest_chunks([1.0, 0.0], user_id="user-1", course_id="")) == 3
        assert {d.file_name for d in await store.list_documents("user-1", "")} == {"a.txt", "b.txt"}

        key = DocumentKey(user_id="user-1", file_name="b.txt", course_id="")
        assert len(await store.get_document_chunks(key)) == 2
        assert await store.delete_document(key) == 2
