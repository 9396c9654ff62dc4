"""
Tests for session history and pending admin operations.
"""

from whatsapp_vendas.memory import (
    ROLE_ASSISTANT,
    ROLE_USER,
    PendingOperationTracker,
    SessionMemory,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestSessionMemory:

    def test_history_created_on_first_use(self):
        memory = SessionMemory()
        assert "p1" not in memory
        assert memory.get_or_create("p1") == []
        assert "p1" in memory

    def test_history_never_exceeds_cap(self):
        memory = SessionMemory(max_history=20, window_size=12)
        for i in range(50):
            memory.append("p1", ROLE_USER, f"msg {i}")
            memory.append("p1", ROLE_ASSISTANT, f"reply {i}")
            assert len(memory.get_or_create("p1")) <= 20

        history = memory.get_or_create("p1")
        assert history[-1] == {"role": ROLE_ASSISTANT, "content": "reply 49"}
        assert history[0] == {"role": ROLE_USER, "content": "msg 40"}

    def test_window_is_last_turns_oldest_first(self):
        memory = SessionMemory(max_history=20, window_size=12)
        for i in range(15):
            memory.append("p1", ROLE_USER, str(i))

        window = memory.window("p1")
        assert len(window) == 12
        assert [turn["content"] for turn in window] == [str(i) for i in range(3, 15)]

    def test_window_shorter_than_limit(self):
        memory = SessionMemory()
        memory.append("p1", ROLE_USER, "oi")
        assert memory.window("p1") == [{"role": ROLE_USER, "content": "oi"}]
        assert memory.window("unknown") == []

    def test_zero_window_is_empty(self):
        memory = SessionMemory(window_size=0)
        memory.append("p1", ROLE_USER, "oi")
        assert memory.window("p1") == []

    def test_least_recently_used_phone_evicted(self):
        memory = SessionMemory(max_phones=2)
        memory.append("p1", ROLE_USER, "a")
        memory.append("p2", ROLE_USER, "b")
        memory.get_or_create("p1")
        memory.append("p3", ROLE_USER, "c")

        assert "p1" in memory
        assert "p2" not in memory
        assert "p3" in memory
        assert len(memory) == 2

    def test_clear(self):
        memory = SessionMemory()
        memory.append("p1", ROLE_USER, "a")
        memory.clear("p1")
        assert "p1" not in memory


class TestPendingOperationTracker:

    def test_start_and_get(self):
        tracker = PendingOperationTracker()
        tracker.start("p1", "adicionar_produto", "nome")

        operation = tracker.get("p1")
        assert operation.type == "adicionar_produto"
        assert operation.step == "nome"

    def test_advance_keeps_data(self):
        tracker = PendingOperationTracker()
        tracker.start("p1", "adicionar_produto", "nome")
        tracker.advance("p1", "categoria", name="Pizza")
        tracker.advance("p1", "preco", category="Salgados")

        operation = tracker.get("p1")
        assert operation.step == "preco"
        assert operation.data == {"name": "Pizza", "category": "Salgados"}

    def test_expires_after_ttl(self):
        clock = FakeClock()
        tracker = PendingOperationTracker(ttl_seconds=600, clock=clock)
        tracker.start("p1", "adicionar_produto", "nome")

        clock.now += 599
        assert tracker.get("p1") is not None

        clock.now += 602
        assert tracker.get("p1") is None
        assert tracker.advance("p1", "categoria") is None

    def test_advance_refreshes_ttl(self):
        clock = FakeClock()
        tracker = PendingOperationTracker(ttl_seconds=600, clock=clock)
        tracker.start("p1", "adicionar_produto", "nome")
        clock.now += 500
        tracker.advance("p1", "categoria", name="Pizza")
        clock.now += 500
        assert tracker.get("p1") is not None

    def test_clear(self):
        tracker = PendingOperationTracker()
        tracker.start("p1", "adicionar_produto", "nome")
        assert tracker.clear("p1") is not None
        assert tracker.get("p1") is None
        assert tracker.clear("p1") is None
