"""Unit tests for the observable image state."""

from kilnworks.core.models import GeneratedImage, ReferenceImage
from kilnworks.core.state import ImageState, Notification


def _ref(image_id: str, active: bool = False) -> ReferenceImage:
    return ReferenceImage(id=image_id, url=f"u-{image_id}", name=image_id, is_active=active)


class TestSubscriptions:
    """Tests for change and notification subscribers."""

    def test_subscriber_called_on_change(self):
        state = ImageState()
        seen = []
        state.subscribe(lambda s: seen.append(len(s.references)))

        state.add_reference(_ref("a"))
        state.add_reference(_ref("b"))

        assert seen == [1, 2]

    def test_unsubscribe(self):
        state = ImageState()
        seen = []
        unsubscribe = state.subscribe(seen.append)

        unsubscribe()
        state.set_generating(True)

        assert seen == []

    def test_notifications(self):
        state = ImageState()
        received = []
        state.on_notification(received.append)

        state.notify("warning", "cloud offline")

        assert received == [Notification(kind="warning", message="cloud offline")]


class TestReferences:
    """Tests for reference collection updates."""

    def test_add_prepends_and_replaces_same_id(self):
        state = ImageState()
        state.add_reference(_ref("a"))
        state.add_reference(_ref("b"))
        state.add_reference(_ref("a", active=True))

        assert [r.id for r in state.references] == ["a", "b"]
        assert state.references[0].is_active

    def test_replace_swaps_whole_tuple(self):
        state = ImageState()
        state.set_references([_ref("a"), _ref("b")])
        before = state.references

        updated = state.replace_reference("b", is_active=True)

        assert updated.is_active
        assert state.references is not before
        assert not before[1].is_active

    def test_replace_unknown_id(self):
        state = ImageState()
        state.set_references([_ref("a")])

        assert state.replace_reference("zzz", is_active=True) is None

    def test_active_references_keep_list_order(self):
        state = ImageState()
        state.set_references([_ref("a", True), _ref("b"), _ref("c", True)])

        assert [r.id for r in state.active_references()] == ["a", "c"]

    def test_remove_and_get(self):
        state = ImageState()
        state.set_references([_ref("a"), _ref("b")])

        state.remove_reference("a")

        assert state.get_reference("a") is None
        assert state.get_reference("b").id == "b"


class TestGenerated:
    """Tests for generated collection updates and flags."""

    def test_add_remove(self):
        state = ImageState()
        image = GeneratedImage(id="g", url="u", prompt="p")

        state.add_generated(image)
        assert state.get_generated("g") is image

        state.remove_generated("g")
        assert state.generated == ()

    def test_flags(self):
        state = ImageState()

        state.set_generating(True)
        state.set_warning("offline")

        assert state.is_generating
        assert state.warning == "offline"
        assert "is_generating=True" in repr(state)
