"""Tests for the customer and preset store."""

import pytest

from ad_report_summarizer.services.preset_store import SORT_STEP, PresetStore
from ad_report_summarizer.services.summary_generator import AiContext
from ad_report_summarizer.utils.exceptions import RecordNotFoundError, ValidationError


@pytest.fixture
def store() -> PresetStore:
    return PresetStore()


class TestCustomers:
    """Tests for customer CRUD and ordering."""

    def test_create_appends_in_steps_of_ten(self, store: PresetStore) -> None:
        a = store.create_customer("A社")
        b = store.create_customer("B社")
        c = store.create_customer("C社")

        assert [a.sort_order, b.sort_order, c.sort_order] == [0, 10, 20]
        assert SORT_STEP == 10
        assert [x.name for x in store.list_customers()] == ["A社", "B社", "C社"]

    def test_name_is_trimmed(self, store: PresetStore) -> None:
        assert store.create_customer("  A社 ").name == "A社"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_rejected(self, store: PresetStore, name: str) -> None:
        with pytest.raises(ValidationError):
            store.create_customer(name)

    def test_rename(self, store: PresetStore) -> None:
        customer = store.create_customer("A社")

        renamed = store.rename_customer(customer.id, "A社 (新)")

        assert renamed.name == "A社 (新)"
        assert renamed.sort_order == customer.sort_order
        assert store.get_customer(customer.id).name == "A社 (新)"

    def test_unknown_customer(self, store: PresetStore) -> None:
        with pytest.raises(RecordNotFoundError) as exc_info:
            store.get_customer("nope")
        assert exc_info.value.http_status == 404

    def test_reorder(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        b = store.create_customer("B")
        c = store.create_customer("C")

        reordered = store.reorder_customers([c.id, a.id, b.id])

        assert [x.name for x in reordered] == ["C", "A", "B"]
        assert [x.sort_order for x in reordered] == [0, 10, 20]

    def test_append_after_reorder(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        b = store.create_customer("B")
        store.reorder_customers([b.id, a.id])

        assert store.create_customer("C").sort_order == 20

    def test_reorder_rejects_duplicates(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        store.create_customer("B")
        with pytest.raises(ValidationError):
            store.reorder_customers([a.id, a.id])

    def test_reorder_rejects_partial_list(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        store.create_customer("B")
        with pytest.raises(ValidationError):
            store.reorder_customers([a.id])

    def test_reorder_rejects_unknown_id(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        with pytest.raises(RecordNotFoundError):
            store.reorder_customers([a.id, "ghost"])

    def test_delete_cascades_to_presets(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        other = store.create_customer("B")
        preset = store.create_preset(customer.id, "月次")
        kept = store.create_preset(other.id, "月次")

        store.delete_customer(customer.id)

        with pytest.raises(RecordNotFoundError):
            store.get_customer(customer.id)
        with pytest.raises(RecordNotFoundError):
            store.get_preset(preset.id)
        assert store.get_preset(kept.id) == kept


class TestPresets:
    """Tests for preset CRUD and ordering."""

    def test_create_and_list(self, store: PresetStore) -> None:
        customer = store.create_customer("A")

        first = store.create_preset(customer.id, "CV重視", goal="CV10件")
        second = store.create_preset(customer.id, "CPA重視", issues="CPA高騰")

        assert [p.id for p in store.list_presets(customer.id)] == [first.id, second.id]
        assert [first.sort_order, second.sort_order] == [0, 10]

    def test_orders_are_per_customer(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        b = store.create_customer("B")
        store.create_preset(a.id, "x")

        assert store.create_preset(b.id, "y").sort_order == 0

    def test_create_for_unknown_customer(self, store: PresetStore) -> None:
        with pytest.raises(RecordNotFoundError):
            store.create_preset("ghost", "x")

    def test_to_context(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        preset = store.create_preset(customer.id, "p", goal="g", issues="i", tasks="t")

        assert preset.to_context() == AiContext(goal="g", issues="i", tasks="t")

    def test_partial_update(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        preset = store.create_preset(customer.id, "p", goal="g", issues="i", tasks="t")

        updated = store.update_preset(preset.id, tasks="新タスク")

        assert updated.name == "p"
        assert updated.goal == "g"
        assert updated.issues == "i"
        assert updated.tasks == "新タスク"

    def test_update_can_clear_field(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        preset = store.create_preset(customer.id, "p", goal="g")

        assert store.update_preset(preset.id, goal="").goal == ""

    def test_update_rejects_blank_name(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        preset = store.create_preset(customer.id, "p")
        with pytest.raises(ValidationError):
            store.update_preset(preset.id, name=" ")

    def test_delete(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        preset = store.create_preset(customer.id, "p")

        store.delete_preset(preset.id)

        assert store.list_presets(customer.id) == []
        with pytest.raises(RecordNotFoundError):
            store.delete_preset(preset.id)

    def test_reorder(self, store: PresetStore) -> None:
        customer = store.create_customer("A")
        p1 = store.create_preset(customer.id, "1")
        p2 = store.create_preset(customer.id, "2")
        p3 = store.create_preset(customer.id, "3")

        reordered = store.reorder_presets(customer.id, [p3.id, p1.id, p2.id])

        assert [p.name for p in reordered] == ["3", "1", "2"]
        assert [p.sort_order for p in reordered] == [0, 10, 20]

    def test_reorder_rejects_foreign_preset(self, store: PresetStore) -> None:
        a = store.create_customer("A")
        b = store.create_customer("B")
        mine = store.create_preset(a.id, "mine")
        theirs = store.create_preset(b.id, "theirs")

        with pytest.raises(RecordNotFoundError):
            store.reorder_presets(a.id, [mine.id, theirs.id])
