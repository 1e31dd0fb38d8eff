from types import SimpleNamespace

import pytest

from flashdeck.schemas.flashcard import FlashcardCreate
from flashdeck.schemas.pack import PackCreate
from flashdeck.services.pack_service import reorder_moves


@pytest.fixture
def make_pack(memory_storage):
    def _make(title="Pack", subject="Maths", published=True, order=0):
        return memory_storage.create_pack(
            PackCreate(title=title, subject=subject, published=published, order=order)
        )

    return _make


class TestVisibility:
    def test_anonymous_sees_published_only(self, client, make_pack):
        published = make_pack("pub", published=True)
        make_pack("draft", published=False)

        resp = client.get("/api/v1/packs/")
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()] == [published.id]

    def test_teacher_sees_own_subject_drafts(self, client, math_teacher, auth_headers, make_pack):
        make_pack("pub", subject="SVT", published=True, order=0)
        make_pack("math draft", subject="Maths", published=False, order=1)
        make_pack("svt draft", subject="SVT", published=False, order=2)

        resp = client.get("/api/v1/packs/", headers=auth_headers(math_teacher))
        assert [p["title"] for p in resp.json()] == ["pub", "math draft"]

    def test_admin_sees_everything(self, client, admin, auth_headers, make_pack):
        make_pack("a", published=False)
        make_pack("b", published=True, order=1)
        resp = client.get("/api/v1/packs/", headers=auth_headers(admin))
        assert len(resp.json()) == 2

    def test_unpublished_pack_forbidden_to_student(self, client, student, auth_headers, make_pack):
        draft = make_pack(published=False)
        resp = client.get(f"/api/v1/packs/{draft.id}", headers=auth_headers(student))
        assert resp.status_code == 403

    def test_missing_pack(self, client):
        assert client.get("/api/v1/packs/nope").status_code == 404

    def test_deleted_pack_hidden_from_students(self, client, make_pack, memory_storage):
        pack = make_pack()
        memory_storage.soft_delete_pack(pack.id)
        assert client.get(f"/api/v1/packs/{pack.id}").status_code == 404

    def test_view_counter(self, client, make_pack, memory_storage):
        pack = make_pack()
        assert client.post(f"/api/v1/packs/{pack.id}/view").status_code == 204
        assert memory_storage.get_pack(pack.id).views == 1


class TestAuthoring:
    def test_teacher_pack_forced_to_own_subject(self, client, math_teacher, auth_headers, make_pack):
        make_pack(order=4)
        resp = client.post(
            "/api/v1/packs/",
            json={"title": "Fractions", "subject": "SVT"},
            headers=auth_headers(math_teacher),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["subject"] == "Maths"
        assert body["order"] == 5
        assert body["created_by_user_id"] == math_teacher.id
        assert body["views"] == 0

    def test_admin_needs_valid_subject(self, client, admin, auth_headers):
        resp = client.post("/api/v1/packs/", json={"title": "X"}, headers=auth_headers(admin))
        assert resp.status_code == 400

    def test_student_cannot_create(self, client, student, auth_headers):
        resp = client.post(
            "/api/v1/packs/", json={"title": "X", "subject": "Maths"}, headers=auth_headers(student)
        )
        assert resp.status_code == 403

    def test_teacher_cannot_edit_other_subject(self, client, math_teacher, auth_headers, make_pack):
        svt = make_pack(subject="SVT")
        resp = client.patch(
            f"/api/v1/packs/{svt.id}", json={"title": "mine now"}, headers=auth_headers(math_teacher)
        )
        assert resp.status_code == 403

    def test_patch_keeps_other_fields(self, client, math_teacher, auth_headers, make_pack):
        pack = make_pack("Algebra", published=False, order=2)
        resp = client.patch(
            f"/api/v1/packs/{pack.id}", json={"published": True}, headers=auth_headers(math_teacher)
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Algebra"
        assert resp.json()["order"] == 2
        assert resp.json()["published"] is True


class TestSoftDeleteLifecycle:
    def test_delete_restore_purge(self, client, math_teacher, auth_headers, make_pack, memory_storage):
        headers = auth_headers(math_teacher)
        pack = make_pack()
        memory_storage.create_flashcard(FlashcardCreate(pack_id=pack.id, question="q", answer="a"))

        assert client.delete(f"/api/v1/packs/{pack.id}", headers=headers).status_code == 204
        assert client.get("/api/v1/packs/").json() == []
        trash = client.get("/api/v1/packs/deleted", headers=headers).json()
        assert [p["id"] for p in trash] == [pack.id]
        assert trash[0]["is_deleted"] is True

        restored = client.post(f"/api/v1/packs/{pack.id}/restore", headers=headers)
        assert restored.status_code == 200
        assert restored.json()["deleted_at"] is None
        assert [p["id"] for p in client.get("/api/v1/packs/").json()] == [pack.id]

        assert client.delete(f"/api/v1/packs/{pack.id}/permanent", headers=headers).status_code == 204
        assert memory_storage.get_pack(pack.id) is None
        assert memory_storage.get_flashcards_by_pack_id(pack.id) == []

    def test_trash_scoped_to_teacher_subject(self, client, math_teacher, auth_headers, make_pack, memory_storage):
        math = make_pack(subject="Maths")
        svt = make_pack(subject="SVT")
        memory_storage.soft_delete_pack(math.id)
        memory_storage.soft_delete_pack(svt.id)

        trash = client.get("/api/v1/packs/deleted", headers=auth_headers(math_teacher)).json()
        assert [p["id"] for p in trash] == [math.id]

    def test_students_have_no_trash(self, client, student, auth_headers):
        assert client.get("/api/v1/packs/deleted", headers=auth_headers(student)).status_code == 403


class TestReordering:
    def test_move_up_swaps_with_neighbour(self, client, admin, auth_headers, make_pack):
        first = make_pack("first", order=0)
        second = make_pack("second", order=1)
        make_pack("other subject", subject="SVT", order=2)

        resp = client.post(
            f"/api/v1/packs/{second.id}/move", json={"direction": "up"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 200
        titles = [p["title"] for p in client.get("/api/v1/packs/").json() if p["subject"] == "Maths"]
        assert titles == ["second", "first"]
        assert {p["id"] for p in resp.json()} == {first.id, second.id}

    def test_move_with_tied_orders_is_one_step(self, client, admin, auth_headers, make_pack):
        make_pack("zero", order=0)
        make_pack("one", order=1)
        make_pack("also one", order=1)
        before = client.get("/api/v1/packs/").json()
        last = before[-1]

        client.post(
            f"/api/v1/packs/{last['id']}/move", json={"direction": "up"}, headers=auth_headers(admin)
        )
        after = [p["id"] for p in client.get("/api/v1/packs/").json()]
        assert after == [before[0]["id"], last["id"], before[1]["id"]]

    def test_move_at_edge_is_noop(self, client, admin, auth_headers, make_pack):
        only = make_pack()
        resp = client.post(
            f"/api/v1/packs/{only.id}/move", json={"direction": "up"}, headers=auth_headers(admin)
        )
        assert resp.json() == []

    def test_bad_direction(self, client, admin, auth_headers, make_pack):
        pack = make_pack()
        resp = client.post(
            f"/api/v1/packs/{pack.id}/move", json={"direction": "left"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 422


class TestFlashcards:
    def test_scenario(self, client, math_teacher, auth_headers):
        headers = auth_headers(math_teacher)
        pack = client.post(
            "/api/v1/packs/", json={"title": "Math", "published": False}, headers=headers
        ).json()

        created = client.post(
            f"/api/v1/packs/{pack['id']}/flashcards/",
            json={"question": "2+2?", "answer": "4"},
            headers=headers,
        )
        assert created.status_code == 201
        assert created.json()["order"] == 0

        cards = client.get(f"/api/v1/packs/{pack['id']}/flashcards/", headers=headers).json()
        assert [c["question"] for c in cards] == ["2+2?"]

        # not visible to the public until published
        assert client.get(f"/api/v1/packs/{pack['id']}/flashcards/").status_code == 403
        client.patch(f"/api/v1/packs/{pack['id']}", json={"published": True}, headers=headers)
        assert [p["id"] for p in client.get("/api/v1/packs/").json()] == [pack["id"]]

    def test_card_must_belong_to_pack(self, client, admin, auth_headers, make_pack, memory_storage):
        pack, other = make_pack(), make_pack("other")
        card = memory_storage.create_flashcard(
            FlashcardCreate(pack_id=other.id, question="q", answer="a")
        )
        resp = client.patch(
            f"/api/v1/packs/{pack.id}/flashcards/{card.id}",
            json={"answer": "b"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 404

    def test_update_delete_and_move(self, client, admin, auth_headers, make_pack, memory_storage):
        headers = auth_headers(admin)
        pack = make_pack()
        a = memory_storage.create_flashcard(FlashcardCreate(pack_id=pack.id, question="a", answer="1", order=0))
        b = memory_storage.create_flashcard(FlashcardCreate(pack_id=pack.id, question="b", answer="2", order=1))
        base = f"/api/v1/packs/{pack.id}/flashcards"

        updated = client.patch(f"{base}/{a.id}", json={"answer": "one"}, headers=headers)
        assert updated.json()["answer"] == "one"
        assert updated.json()["question"] == "a"

        client.post(f"{base}/{a.id}/move", json={"direction": "down"}, headers=headers)
        assert [c.id for c in memory_storage.get_flashcards_by_pack_id(pack.id)] == [b.id, a.id]

        assert client.delete(f"{base}/{b.id}", headers=headers).status_code == 204
        assert [c.id for c in memory_storage.get_flashcards_by_pack_id(pack.id)] == [a.id]

    def test_pack_purged_before_card_insert(self, client, admin, auth_headers, make_pack, memory_storage):
        pack = make_pack()
        list_cards = memory_storage.get_flashcards_by_pack_id

        def purge_then_list(pack_id):
            # the pack disappears after the endpoint has looked it up
            memory_storage.permanently_delete_pack(pack_id)
            return list_cards(pack_id)

        memory_storage.get_flashcards_by_pack_id = purge_then_list
        resp = client.post(
            f"/api/v1/packs/{pack.id}/flashcards/",
            json={"question": "q", "answer": "a"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 404
        assert list_cards(pack.id) == []


class TestReorderMoves:
    def _items(self, *orders):
        return [SimpleNamespace(id=f"i{n}", order=order) for n, order in enumerate(orders)]

    def test_distinct_orders_swap(self):
        a, b, c = self._items(0, 5, 10)
        assert reorder_moves([a, b, c], 2, "up") == [(c, 5), (b, 10)]

    def test_edges(self):
        a, b = self._items(0, 1)
        assert reorder_moves([a, b], 0, "up") == []
        assert reorder_moves([a, b], 1, "down") == []

    def test_tie_renumbers_by_position(self):
        x, y, z = self._items(0, 1, 1)
        # z takes y's place; x keeps 0, so nothing jumps past it
        assert reorder_moves([x, y, z], 2, "up") == [(y, 2)]

    def test_tie_moving_down(self):
        x, y, z = self._items(3, 3, 3)
        assert reorder_moves([x, y, z], 0, "down") == [(y, 0), (x, 1), (z, 2)]
