"""
Tests for role classification strategies.
"""
import unittest

from storycapture.diarization.models import Utterance
from storycapture.roles.classifier import (
    DiarizationBasedClassifier,
    HeuristicFallbackClassifier,
    Role,
    assign_roles_by_duration,
    build_speaker_profiles,
    create_role_classifier,
    is_question,
)


def utt(speaker, text, start, end, confidence=0.0):
    return Utterance(speaker_id=speaker, text=text, start_ms=start, end_ms=end, confidence=confidence)


class TestDiarizationBasedClassifier(unittest.TestCase):
    """Tests for the DiarizationBasedClassifier class."""

    def setUp(self):
        self.classifier = DiarizationBasedClassifier()

    def test_longest_speaker_is_elderly(self):
        utterances = [
            utt("speaker_0", "What was school like?", 0, 2000),
            utt("speaker_1", "We walked two miles every morning.", 2000, 9000),
            utt("speaker_0", "Wow.", 9000, 9500),
        ]

        roles = self.classifier.classify(utterances)

        self.assertEqual(roles, [Role.YOUNG_ADULT, Role.ELDERLY, Role.YOUNG_ADULT])

    def test_tie_goes_to_first_seen(self):
        utterances = [utt("A", "one", 0, 1000), utt("B", "two", 1000, 2000)]

        roles = self.classifier.classify(utterances)

        self.assertEqual(roles, [Role.ELDERLY, Role.YOUNG_ADULT])

    def test_exactly_one_elderly_speaker(self):
        utterances = [utt("A", "a", 0, 100), utt("B", "b", 100, 900), utt("C", "c", 900, 1200)]

        mapping_roles = self.classifier.classify(utterances)

        self.assertEqual(mapping_roles.count(Role.ELDERLY), 1)

    def test_mapping_is_fixed_after_first_segment(self):
        """A later segment where the young adult talks longer does not swap roles."""
        self.classifier.classify([utt("A", "long story", 0, 8000), utt("B", "Really?", 8000, 9000)])

        roles = self.classifier.classify([utt("A", "Yes.", 0, 500), utt("B", "Tell me everything about it", 500, 9000)])

        self.assertEqual(roles, [Role.ELDERLY, Role.YOUNG_ADULT])

    def test_new_speaker_later_is_young_adult(self):
        self.classifier.classify([utt("A", "story", 0, 5000)])

        roles = self.classifier.classify([utt("C", "Hi grandma, sorry I'm late", 0, 10000)])

        self.assertEqual(roles, [Role.YOUNG_ADULT])
        self.assertEqual(self.classifier.mapping()["C"], Role.YOUNG_ADULT)

    def test_empty_batch_does_not_fix_mapping(self):
        self.assertEqual(self.classifier.classify([]), [])

        roles = self.classifier.classify([utt("B", "hello", 0, 100)])

        self.assertEqual(roles, [Role.ELDERLY])

    def test_speaker_profiles(self):
        self.classifier.classify([utt("A", "x", 0, 1000, -0.2), utt("A", "y", 1000, 3000, -0.4), utt("B", "z", 3000, 3500)])

        profiles = {p.speaker_id: p for p in self.classifier.speaker_profiles()}

        self.assertEqual(profiles["A"].total_duration_ms, 3000)
        self.assertAlmostEqual(profiles["A"].mean_confidence, -0.3)
        self.assertEqual(profiles["A"].mean_utterance_ms, 1500)
        self.assertEqual(profiles["B"].utterance_count, 1)


class TestAssignRolesByDuration(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(assign_roles_by_duration([]), {})

    def test_profiles_in_first_seen_order(self):
        profiles = build_speaker_profiles([utt("B", "b", 0, 10), utt("A", "a", 10, 20), utt("B", "b", 20, 30)])

        self.assertEqual([p.speaker_id for p in profiles], ["B", "A"])
        self.assertEqual(assign_roles_by_duration(profiles), {"B": Role.ELDERLY, "A": Role.YOUNG_ADULT})


class TestHeuristicFallbackClassifier(unittest.TestCase):
    """Tests for the HeuristicFallbackClassifier class."""

    def setUp(self):
        self.classifier = HeuristicFallbackClassifier(long_utterance_chars=200)

    def test_first_utterance_is_young_adult(self):
        self.assertEqual(self.classifier.classify_text("When I was young we had no TV."), Role.YOUNG_ADULT)

    def test_alternates_by_default(self):
        roles = [self.classifier.classify_text(t) for t in ("Hello", "Hi", "Nice day", "Indeed")]

        self.assertEqual(roles, [Role.YOUNG_ADULT, Role.ELDERLY, Role.YOUNG_ADULT, Role.ELDERLY])

    def test_question_is_young_adult(self):
        self.classifier.classify_text("Hello")

        self.assertEqual(self.classifier.classify_text("Where did you grow up"), Role.YOUNG_ADULT)

    def test_question_wins_over_length(self):
        """Precedence: a long question is still young_adult."""
        self.classifier.classify_text("Hello")
        long_question = "And " + "so on " * 50 + "?"

        self.assertEqual(self.classifier.classify_text(long_question), Role.YOUNG_ADULT)

    def test_long_utterance_is_elderly(self):
        self.classifier.classify_text("Hello")
        self.classifier.classify_text("Hi")  # elderly by alternation

        self.assertEqual(self.classifier.classify_text("x" * 201), Role.ELDERLY)

    def test_reminiscence_marker_is_elderly(self):
        self.classifier.classify_text("Hello")
        self.classifier.classify_text("Hi")

        self.assertEqual(self.classifier.classify_text("Back then it was different"), Role.ELDERLY)

    def test_inquisitive_marker_is_young_adult(self):
        self.classifier.classify_text("Hello")

        self.assertEqual(self.classifier.classify_text("I wonder if it snowed"), Role.YOUNG_ADULT)

    def test_reminiscence_wins_over_inquisitive(self):
        self.classifier.classify_text("Hello")
        self.classifier.classify_text("Hi")

        self.assertEqual(self.classifier.classify_text("I wonder, back then, if we knew"), Role.ELDERLY)

    def test_classify_and_reset(self):
        roles = self.classifier.classify([utt(None, "Hello", 0, 1), utt(None, "Hi", 1, 2)])
        self.assertEqual(roles, [Role.YOUNG_ADULT, Role.ELDERLY])

        self.classifier.reset()

        self.assertEqual(self.classifier.classify_text("Hi again"), Role.YOUNG_ADULT)


class TestIsQuestion(unittest.TestCase):
    def test_question_words_and_mark(self):
        self.assertTrue(is_question("what happened next"))
        self.assertTrue(is_question("Could you repeat that"))
        self.assertTrue(is_question("You met him there?"))
        self.assertFalse(is_question("Whatever you say."))
        self.assertFalse(is_question("I know how."))


class TestCreateRoleClassifier(unittest.TestCase):
    def test_strategy_selection(self):
        self.assertIsInstance(create_role_classifier(True), DiarizationBasedClassifier)
        self.assertIsInstance(create_role_classifier(False), HeuristicFallbackClassifier)


if __name__ == '__main__':
    unittest.main()
