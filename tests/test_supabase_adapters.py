"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from postgrest.exceptions import APIError

from guest_access.adapters.supabase_face_cache_repository import (
    SupabaseFaceCacheRepository,
)
from guest_access.adapters.supabase_face_data_repository import (
    SupabaseFaceDataRepository,
)
from guest_access.adapters.supabase_gallery_repository import SupabaseGalleryRepository
from guest_access.adapters.supabase_guest_repository import SupabaseGuestRepository
from guest_access.adapters.supabase_rate_limit_repository import (
    SupabaseRateLimitRepository,
)
from guest_access.domain.faces import BoundingBox, FaceRecord
from guest_access.domain.galleries import SelectionState

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeResponse:
    data: object


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[object]] = field(
        default_factory=lambda: {"select": [], "insert": [], "update": [], "delete": []}
    )
    insert_error: APIError | None = None
    last_payload: object | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)
    last_order: tuple[str, bool] | None = None
    rows: list[dict[str, object]] | None = None
    max_rows: int = 1000
    ranges: list[tuple[int, int]] = field(default_factory=list)
    in_filters: list[tuple[str, list[object]]] = field(default_factory=list)

    def queue(self, action: str, data: object) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        self._range: tuple[int, int] | None = None
        self._in: tuple[str, list[object]] | None = None
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.last_payload = payload
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        return self

    def delete(self) -> "FakeTable":
        self._action = "delete"
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, column: str, desc: bool = False) -> "FakeTable":
        self.last_order = (column, desc)
        return self

    def range(self, start: int, end: int) -> "FakeTable":
        self.ranges.append((start, end))
        self._range = (start, end)
        return self

    def in_(self, column: str, values: list[object]) -> "FakeTable":
        self.in_filters.append((column, list(values)))
        self._in = (column, list(values))
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        if action == "insert" and self.insert_error is not None:
            raise self.insert_error
        if action == "select" and self.rows is not None:
            return FakeResponse(data=self._select_rows())
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)

    def _select_rows(self) -> list[dict[str, object]]:
        rows = self.rows or []
        in_filter = getattr(self, "_in", None)
        if in_filter is not None:
            column, values = in_filter
            rows = [row for row in rows if row.get(column) in values]
        window = getattr(self, "_range", None)
        if window is not None:
            rows = rows[window[0] : window[1] + 1]
        return rows[: self.max_rows]


@dataclass
class FakeRpc:
    data: object

    def execute(self) -> FakeResponse:
        return FakeResponse(data=self.data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)
    rpc_results: list[object] = field(default_factory=list)
    rpc_calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]

    def rpc(self, name: str, params: dict[str, object]) -> FakeRpc:
        self.rpc_calls.append((name, params))
        return FakeRpc(self.rpc_results.pop(0) if self.rpc_results else None)


def _unique_violation() -> APIError:
    return APIError({"code": "23505", "message": "duplicate key value"})


def _cache_row(**overrides) -> dict[str, object]:  # type: ignore[no-untyped-def]
    row: dict[str, object] = {
        "id": "entry-1",
        "gallery_id": "g1",
        "face_hash": "f0f0f0f000000000",
        "face_id": "face-1",
        "matched_photo_ids": ["p1", "p2"],
        "mobile_number": "9876543210",
        "guest_session_token": None,
        "selfie_storage_key": None,
        "created_at": NOW.isoformat(),
        "last_used_at": NOW.isoformat(),
    }
    row.update(overrides)
    return row


def test_gallery_repository_maps_rows() -> None:
    client = FakeSupabaseClient()
    galleries = client.table("galleries")
    galleries.queue(
        "select",
        [
            {
                "id": "g1",
                "name": "Wedding",
                "selection_state": "OPEN",
                "comments_enabled": True,
                "selfie_matching_enabled": True,
                "require_mobile_for_selfie": None,
                "downloads": {"individual": {"enabled": True}},
                "photographer_id": "ph-1",
            }
        ],
    )
    galleries.queue("select", [{"id": "g2", "selection_state": "bogus", "downloads": "x"}])
    client.table("photos").queue("select", [{"id": "p1"}, {"id": "p2"}])

    repository = SupabaseGalleryRepository(client)
    gallery = repository.get_gallery("g1")
    odd = repository.get_gallery("g2")

    assert gallery is not None
    assert gallery.selection_state is SelectionState.OPEN
    assert gallery.require_mobile_for_selfie is False
    assert gallery.downloads == {"individual": {"enabled": True}}
    assert odd is not None
    assert odd.selection_state is SelectionState.DISABLED
    assert odd.downloads is None
    assert gallery.photographer_id == "ph-1"
    assert odd.photographer_id is None
    assert repository.list_photo_ids("g1") == {"p1", "p2"}
    assert repository.get_photo("missing") is None


def test_face_cache_repository_roundtrip() -> None:
    client = FakeSupabaseClient()
    table = client.table("guest_selfie_faces")
    table.queue("insert", [_cache_row()])
    table.queue("select", [_cache_row()])

    repository = SupabaseFaceCacheRepository(client)
    created = repository.insert_entry(
        gallery_id="g1",
        face_hash="f0f0f0f000000000",
        face_id="face-1",
        matched_photo_ids=["p1", "p2"],
        mobile_number="9876543210",
        session_token=None,
        selfie_storage_key=None,
    )
    latest = repository.get_latest_by_mobile("g1", "9876543210")

    assert created is not None
    assert created.matched_photo_ids == frozenset({"p1", "p2"})
    assert created.created_at == NOW
    assert latest is not None
    assert table.last_order == ("last_used_at", True)
    assert ("mobile_number", "9876543210") in table.last_filters


def test_face_cache_insert_conflict_returns_none() -> None:
    client = FakeSupabaseClient()
    client.table("guest_selfie_faces").insert_error = _unique_violation()

    repository = SupabaseFaceCacheRepository(client)

    assert (
        repository.insert_entry("g1", "abcd", "face-1", [], None, "browser-1", None)
        is None
    )


def test_face_cache_delete_by_mobile_counts_rows() -> None:
    client = FakeSupabaseClient()
    client.table("guest_selfie_faces").queue(
        "delete", [_cache_row(), _cache_row(id="entry-2")]
    )

    assert SupabaseFaceCacheRepository(client).delete_by_mobile("g1", "9876543210") == 2


def test_rate_limit_repository() -> None:
    client = FakeSupabaseClient(rpc_results=[[{"attempt_count": 4}], None, 7])
    table = client.table("selfie_rate_limits")
    window_row = {
        "id": "w1",
        "gallery_id": "g1",
        "guest_session_id": "g1:s:tok",
        "attempt_count": 1,
        "window_start": NOW.isoformat(),
    }
    table.queue("insert", [window_row])
    table.queue("update", [])

    repository = SupabaseRateLimitRepository(client)
    window = repository.create_window("g1", "g1:s:tok", NOW)

    assert window is not None
    assert window.window_start == NOW
    assert repository.reset_window("w1", NOW, NOW) is False
    assert ("window_start", NOW.isoformat()) in table.last_filters
    assert repository.increment_attempts("w1", 10) == 4
    assert repository.increment_attempts("w1", 10) is None
    assert repository.increment_attempts("w1", 10) == 7
    assert client.rpc_calls[0] == (
        "increment_selfie_attempts",
        {"p_window_id": "w1", "p_max_attempts": 10},
    )


def test_rate_limit_create_conflict_returns_none() -> None:
    client = FakeSupabaseClient()
    client.table("selfie_rate_limits").insert_error = _unique_violation()

    assert SupabaseRateLimitRepository(client).create_window("g1", "g1:s:tok", NOW) is None


def test_guest_repository() -> None:
    client = FakeSupabaseClient()
    client.table("guests").queue(
        "insert",
        [
            {
                "id": "guest-1",
                "session_token": "tok",
                "gallery_id": "g1",
                "matched_photo_ids": ["p1"],
            }
        ],
    )
    client.table("primary_clients").queue(
        "select", [{"id": "c1", "session_token": "client-tok", "gallery_id": "g1"}]
    )

    repository = SupabaseGuestRepository(client)
    guest = repository.create_guest("g1", "tok", ["p1"], "9876543210")
    primary = repository.get_primary_client_by_token("client-tok")

    assert guest.matched_photo_ids == frozenset({"p1"})
    assert client.table("guests").last_payload["mobile_number"] == "9876543210"  # type: ignore[index]
    assert primary is not None
    assert primary.gallery_id == "g1"
    assert repository.get_guest_by_token("unknown") is None


def test_face_data_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("face_data")
    table.queue(
        "select",
        [
            {
                "external_face_id": "face-1",
                "photo_id": "p1",
                "gallery_id": "g1",
                "provider": "mock",
                "confidence": 99.5,
                "bounding_box": {"left": 0.1, "top": 0.2, "width": 0.3, "height": 0.4},
            }
        ],
    )

    repository = SupabaseFaceDataRepository(client)
    repository.create_faces(
        [
            FaceRecord(
                external_face_id="face-1",
                photo_id="p1",
                gallery_id="g1",
                provider="mock",
                confidence=99.5,
                bounding_box=BoundingBox(left=0.1, top=0.2, width=0.3, height=0.4),
            )
        ]
    )
    faces = repository.list_gallery_faces("g1")

    assert isinstance(table.last_payload, list)
    assert table.last_payload[0]["bounding_box"]["width"] == 0.3
    assert faces[0].bounding_box == BoundingBox(left=0.1, top=0.2, width=0.3, height=0.4)


def test_list_photo_ids_reads_past_the_row_cap() -> None:
    client = FakeSupabaseClient()
    photos = client.table("photos")
    photos.rows = [{"id": f"p{index:04d}", "gallery_id": "g1"} for index in range(2500)]

    photo_ids = SupabaseGalleryRepository(client).list_photo_ids("g1")

    assert len(photo_ids) == 2500
    assert photos.ranges == [(0, 999), (1000, 1999), (2000, 2999)]
    assert photos.last_order == ("id", False)


def test_filter_photo_ids_scopes_lookup_to_candidates() -> None:
    client = FakeSupabaseClient()
    photos = client.table("photos")
    photos.rows = [{"id": f"p{index:04d}", "gallery_id": "g1"} for index in range(1500)]
    candidates = ["p1499", "p0003", "gone", "", "p0003"]

    present = SupabaseGalleryRepository(client).filter_photo_ids("g1", candidates)

    assert present == {"p0003", "p1499"}
    assert photos.in_filters == [("id", ["gone", "p0003", "p1499"])]
    assert ("gallery_id", "g1") in photos.last_filters


def test_filter_photo_ids_chunks_long_candidate_lists() -> None:
    client = FakeSupabaseClient()
    photos = client.table("photos")
    photos.rows = [{"id": f"p{index:04d}", "gallery_id": "g1"} for index in range(1200)]

    present = SupabaseGalleryRepository(client).filter_photo_ids(
        "g1", [f"p{index:04d}" for index in range(1200)]
    )

    assert len(present) == 1200
    assert [len(values) for _, values in photos.in_filters] == [200] * 6


def test_filter_photo_ids_without_candidates_skips_query() -> None:
    client = FakeSupabaseClient()

    assert SupabaseGalleryRepository(client).filter_photo_ids("g1", []) == set()
    assert client.table("photos").in_filters == []


def test_list_gallery_faces_reads_past_the_row_cap() -> None:
    client = FakeSupabaseClient()
    table = client.table("face_data")
    table.rows = [
        {
            "external_face_id": f"face-{index:04d}",
            "photo_id": f"p{index:04d}",
            "gallery_id": "g1",
            "provider": "rekognition",
            "confidence": 99.0,
            "bounding_box": None,
        }
        for index in range(1200)
    ]

    faces = SupabaseFaceDataRepository(client).list_gallery_faces("g1")

    assert len(faces) == 1200
    assert table.ranges == [(0, 999), (1000, 1999)]
