import pytest

from conftest import bot, user
from services.conversation import Carousel, reconcile, regenerate_parts


def group_shape(groups):
    return [(g.group_id, [m.id for m in g.assistant_messages]) for g in groups]


class TestReconcile:
    def test_one_group_per_turn(self):
        messages = [user("u1", "hi"), bot("a1"), user("u2", "how are you"), bot("a2")]
        assert group_shape(reconcile(messages)) == [("u1", ["a1"]), ("u2", ["a2"])]

    def test_regeneration_folds_into_same_group(self):
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2")]
        groups = reconcile(messages)
        assert group_shape(groups) == [("u1", ["a1", "a2"])]
        assert groups[0].user_message.id == "u1"

    def test_repeated_regenerations_keep_arrival_order(self):
        messages = [
            user("u1", "hi"), bot("a1"),
            user("u1b", "hi"), bot("a2"),
            user("u1c", "hi"), bot("a3"),
        ]
        assert group_shape(reconcile(messages)) == [("u1", ["a1", "a2", "a3"])]

    def test_different_prompts_back_to_back_are_distinct(self):
        messages = [user("u1", "hi"), bot("a1"), user("u2", "hi!"), bot("a2")]
        assert len(reconcile(messages)) == 2

    def test_same_text_different_image_is_distinct(self):
        messages = [
            user("u1", "what is this", "data:image/png;base64,AAA"), bot("a1"),
            user("u2", "what is this", "data:image/png;base64,BBB"), bot("a2"),
        ]
        assert group_shape(reconcile(messages)) == [("u1", ["a1"]), ("u2", ["a2"])]

    def test_identical_prompt_after_other_turn_starts_new_group(self):
        messages = [
            user("u1", "hi"), bot("a1"),
            user("u2", "bye"), bot("a2"),
            user("u3", "hi"), bot("a3"),
        ]
        assert [g.group_id for g in reconcile(messages)] == ["u1", "u2", "u3"]

    def test_contiguous_assistant_run_is_claimed(self):
        messages = [user("u1", "hi"), bot("a1"), bot("a2")]
        assert group_shape(reconcile(messages)) == [("u1", ["a1", "a2"])]

    def test_pending_user_turn_yields_no_group(self):
        messages = [user("u1", "hi"), bot("a1"), user("u2", "next")]
        assert group_shape(reconcile(messages)) == [("u1", ["a1"])]
        assert reconcile([user("u1", "hi")]) == []

    def test_pending_regeneration_keeps_existing_group(self):
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi")]
        assert group_shape(reconcile(messages)) == [("u1", ["a1"])]

    def test_empty_list(self):
        assert reconcile([]) == []

    @pytest.mark.parametrize("messages", [
        [user("u1", "a"), bot("a1"), user("u2", "a"), bot("a2"), user("u3", "b"), bot("a3")],
        [user("u1", "a"), bot("a1"), bot("a2"), user("u2", "b"), user("u3", "c"), bot("a3")],
        [bot("a0"), user("u1", "a"), bot("a1"), user("u2", "a")],
    ])
    def test_no_message_in_two_groups(self, messages):
        seen = []
        for g in reconcile(messages):
            seen.append(g.user_message.id)
            seen.extend(m.id for m in g.assistant_messages)
        assert len(seen) == len(set(seen))

    def test_idempotent(self):
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2"), user("u2", "x"), bot("a3")]
        assert reconcile(messages) == reconcile(messages)

    def test_active_index_defaults_to_last_and_clamps(self):
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2")]
        assert reconcile(messages)[0].active_index == 1
        assert reconcile(messages, {"u1": 0})[0].active_index == 0
        assert reconcile(messages, {"u1": 7})[0].active_index == 1
        assert reconcile(messages, {"u1": -3})[0].active_index == 0


class TestRegenerateParts:
    def test_returns_originating_user_parts(self):
        messages = [user("u1", "describe", "https://example.com/cat.png"), bot("a1")]
        parts = regenerate_parts(messages, "a1")
        assert [p.model_dump(by_alias=True) for p in parts] == [
            p.model_dump(by_alias=True) for p in messages[0].parts
        ]

    def test_works_for_later_slides(self):
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2")]
        assert regenerate_parts(messages, "a2")[0].text == "hi"

    def test_unknown_assistant(self):
        assert regenerate_parts([user("u1", "hi"), bot("a1")], "nope") is None


class TestCarousel:
    def test_follows_new_response_in_latest_group(self):
        carousel = Carousel()
        messages = [user("u1", "hi"), bot("a1")]
        carousel.update(messages)
        assert carousel.groups[0].active_index == 0

        messages += [user("u1b", "hi"), bot("a2", "")]
        groups = carousel.update(messages, "streaming")
        assert groups[0].active_index == 1

    def test_manual_navigation_survives_settled_updates(self):
        carousel = Carousel()
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2")]
        carousel.update(messages, "streaming")
        carousel.update(messages, "ready")

        assert carousel.set_active_index("u1", 0) == 0
        groups = carousel.update(messages, "ready")
        assert groups[0].active_index == 0

    def test_completion_moves_to_newest(self):
        carousel = Carousel()
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2", "")]
        carousel.update(messages, "streaming")
        carousel.set_active_index("u1", 0)
        groups = carousel.update(messages, "ready")
        assert groups[0].active_index == 1

    def test_older_groups_keep_their_slide(self):
        carousel = Carousel()
        messages = [user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2")]
        carousel.update(messages)
        carousel.set_active_index("u1", 0)

        messages += [user("u2", "next"), bot("a3")]
        groups = carousel.update(messages)
        assert [g.active_index for g in groups] == [0, 0]

    def test_set_active_index_clamps(self):
        carousel = Carousel()
        carousel.update([user("u1", "hi"), bot("a1"), user("u1b", "hi"), bot("a2")])
        assert carousel.set_active_index("u1", 9) == 1
        assert carousel.set_active_index("u1", -1) == 0

    def test_set_active_index_unknown_group(self):
        carousel = Carousel()
        carousel.update([user("u1", "hi"), bot("a1")])
        with pytest.raises(KeyError):
            carousel.set_active_index("missing", 0)

    def test_active_index_always_valid(self):
        carousel = Carousel()
        messages = []
        for i, text in enumerate(["a", "a", "b", "b", "b", "c"]):
            messages += [user(f"u{i}", text), bot(f"a{i}")]
            for g in carousel.update(messages):
                assert 0 <= g.active_index < len(g.assistant_messages)
