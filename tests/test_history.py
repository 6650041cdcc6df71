import pytest

from inkpatch.core.annotations.manager import AnnotationStore
from inkpatch.core.annotations.models import (
    Annotation,
    AnnotationType,
    ShapeData,
    ShapeType,
    StrokeData,
    TextData,
)
from inkpatch.core.annotations.undo_redo import History
from inkpatch.core.page.models import Point


def text_annotation(text="a", page_id="page-1", x=10.0, y=10.0):
    return Annotation.create(AnnotationType.TEXT, page_id,
                             TextData(text=text, x=x, y_top=y, width=50, height=14))


def ids(store):
    return [ann.id for ann in store.annotations]


class TestHistory:

    def test_starts_with_one_empty_snapshot(self):
        history = History()
        assert history.snapshots == [[]]
        assert history.cursor == 0
        assert not history.can_undo()
        assert not history.can_redo()

    def test_push_truncates_redo_tail(self):
        history = History()
        a, b, c = text_annotation("a"), text_annotation("b"), text_annotation("c")
        history.push([a])
        history.push([a, b])
        history.undo()
        history.push([a, c])

        assert history.cursor == 2
        assert len(history.snapshots) == 3
        assert [ann.data.text for ann in history.current] == ["a", "c"]

    def test_snapshots_are_copies(self):
        history = History()
        live = [text_annotation("a")]
        history.push(live)
        live[0].data.text = "changed"
        assert history.current[0].data.text == "a"

    def test_max_size_drops_oldest(self):
        history = History(max_size=3)
        for n in range(5):
            history.push([text_annotation(str(n))])
        assert len(history) == 3
        assert history.cursor == 2
        assert history.current[0].data.text == "4"

    def test_purge_touches_every_snapshot(self):
        history = History()
        keep = text_annotation("keep", page_id="page-1")
        drop = text_annotation("drop", page_id="page-2")
        history.push([keep])
        history.push([keep, drop])
        history.push([drop])

        removed = history.purge(lambda ann: ann.page_id == "page-2")

        assert removed == 2
        assert all(ann.page_id == "page-1" for snap in history.snapshots for ann in snap)


class TestAnnotationStore:

    def test_add_undo_add_scenario(self):
        store = AnnotationStore()
        a, b, c = text_annotation("a"), text_annotation("b"), text_annotation("c")

        store.add(a)
        assert store.history.cursor == 1
        store.add(b)
        assert store.history.cursor == 2
        store.undo()
        assert ids(store) == [a.id]
        store.add(c)

        assert store.history.cursor == 2
        assert len(store.history.snapshots) == 3
        assert ids(store) == [a.id, c.id]
        assert not store.can_redo()

    def test_every_mutation_is_undoable(self):
        store = AnnotationStore()
        a = store.add(text_annotation("a"))
        store.update(a.id, {'text': 'ab'})
        store.update(a.id, {'text': 'abc'})
        store.remove(a.id)

        assert store.history.cursor == 4
        assert store.undo()
        assert store.get(a.id).data.text == "abc"
        assert store.undo()
        assert store.get(a.id).data.text == "ab"
        assert store.undo()
        assert store.get(a.id).data.text == "a"
        assert store.undo()
        assert len(store) == 0

    def test_undo_redo_bounds_are_noops(self):
        store = AnnotationStore()
        assert store.undo() is False
        store.add(text_annotation())
        assert store.redo() is False
        assert store.undo() is True
        assert store.undo() is False
        assert store.redo() is True
        assert store.redo() is False

    def test_undo_then_redo_restores_state(self):
        store = AnnotationStore()
        for n in range(4):
            store.add(text_annotation(str(n)))
        store.update(store.annotations[0].id, {'color': '#ff0000'})
        before = [ann.to_dict() for ann in store.annotations]

        for _ in range(3):
            store.undo()
        for _ in range(3):
            store.redo()

        assert [ann.to_dict() for ann in store.annotations] == before

    def test_changed_signal_fires_on_mutations(self):
        store = AnnotationStore()
        calls = []
        store.changed.connect(lambda: calls.append(1))

        a = store.add(text_annotation())
        store.update(a.id, {'text': 'x'})
        store.undo()
        store.undo()
        store.undo()  # no-op at the bottom

        assert len(calls) == 4

    def test_duplicate_id_rejected(self):
        store = AnnotationStore()
        a = store.add(text_annotation())
        with pytest.raises(ValueError):
            store.add(a)

    def test_update_and_remove_unknown_ids(self):
        store = AnnotationStore()
        assert store.update("missing", {'text': 'x'}) is None
        assert store.remove("missing") is False
        assert store.history.cursor == 0

    def test_selection_is_not_history(self):
        store = AnnotationStore()
        a = store.add(text_annotation())
        store.select(a.id)
        assert store.selected.id == a.id
        assert store.history.cursor == 1

        store.undo()
        assert store.selected_id is None

        with pytest.raises(KeyError):
            store.select("missing")

    def test_purge_page_prevents_resurrection(self):
        store = AnnotationStore()
        keep = store.add(text_annotation("keep", page_id="page-1"))
        store.add(text_annotation("gone", page_id="page-2"))

        assert store.purge_page("page-2") == 1
        assert ids(store) == [keep.id]
        while store.undo():
            assert all(ann.page_id == "page-1" for ann in store.annotations)

    def test_find_native_edit(self):
        store = AnnotationStore()
        plain = store.add(text_annotation("plain"))
        edit = store.add(Annotation.create(
            AnnotationType.TEXT, "page-1",
            TextData(text="x", x=0, y_top=0, is_native_edit=True, original_text_id="group-a"),
        ))
        assert store.find_native_edit("page-1", "group-a").id == edit.id
        assert store.find_native_edit("page-2", "group-a") is None
        assert store.find_native_edit("page-1", plain.id) is None

    def test_annotation_at_point_prefers_top_layer(self):
        store = AnnotationStore()
        shape = store.add(Annotation.create(
            AnnotationType.SHAPE, "page-1", ShapeData(ShapeType.RECTANGLE, 0, 0, 100, 100)))
        stroke = store.add(Annotation.create(
            AnnotationType.DRAW, "page-1",
            StrokeData(points=[Point(0, 50), Point(100, 50)], thickness=2)))

        assert store.annotation_at_point("page-1", 50, 51).id == stroke.id
        assert store.annotation_at_point("page-1", 50, 20).id == shape.id
        assert store.annotation_at_point("page-1", 150, 150) is None
        assert store.annotation_at_point("page-2", 50, 50) is None

    def test_unsaved_changes_tracking(self):
        store = AnnotationStore()
        assert not store.has_unsaved_changes()
        a = store.add(text_annotation())
        assert store.has_unsaved_changes()
        store.mark_saved()
        assert not store.has_unsaved_changes()
        store.update(a.id, {'text': 'new'})
        assert store.has_unsaved_changes()
        store.undo()
        assert not store.has_unsaved_changes()
