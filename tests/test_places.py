import unittest

from agent.places import (
    PLACE_GUIDANCE_HEADER,
    PlaceDirectory,
    extract_places,
    format_places_block,
    normalize_place_references,
    parse_places_blocks,
)
from models.schemas import Message
from tests.helpers import sample_place


class PlaceExtractionTests(unittest.TestCase):
    def test_extract_registers_places_and_appends_markup_guidance(self):
        directory = PlaceDirectory()
        places = [sample_place("ChIJ123", "Café Miel"), sample_place("ChIJ456", "Soda Tapia")]
        result = "Found 2 places:\n\n" + format_places_block(places)

        augmented, new_ids = extract_places(result, directory)

        self.assertEqual(new_ids, ["ChIJ123", "ChIJ456"])
        self.assertEqual(directory.ids(), ["ChIJ123", "ChIJ456"])
        self.assertTrue(augmented.startswith(result))
        self.assertIn(PLACE_GUIDANCE_HEADER, augmented)
        self.assertIn("- Café Miel: [[place:ChIJ123]]", augmented)
        self.assertIn("- Soda Tapia: [[place:ChIJ456]]", augmented)

    def test_known_places_are_not_reported_as_new(self):
        directory = PlaceDirectory([sample_place("ChIJ123")])
        result = format_places_block([sample_place("ChIJ123"), sample_place("ChIJ789", "La Esquina")])

        _, new_ids = extract_places(result, directory)

        self.assertEqual(new_ids, ["ChIJ789"])
        self.assertEqual(len(directory), 2)

    def test_result_without_block_is_untouched(self):
        directory = PlaceDirectory()
        augmented, new_ids = extract_places("No places found.", directory)

        self.assertEqual(augmented, "No places found.")
        self.assertEqual(new_ids, [])

    def test_malformed_entries_are_skipped(self):
        text = '```places\n[{"id": "ok", "name": "Fine"}, {"name": "no id"}]\n```\n```places\nnot json\n```'

        places = parse_places_blocks(text)

        self.assertEqual([p.id for p in places], ["ok"])


class PlaceReferenceNormalizationTests(unittest.TestCase):
    def setUp(self):
        self.directory = PlaceDirectory([sample_place("ChIJ123")])

    def test_bracket_variants_are_rewritten(self):
        text = "Try [ChIJ123] for breakfast."
        self.assertEqual(
            normalize_place_references(text, self.directory),
            "Try [[place:ChIJ123]] for breakfast.",
        )

    def test_all_variants_normalize(self):
        variants = [
            "[ChIJ123]",
            "[[ChIJ123]]",
            "[place:ChIJ123]",
            "[Place:ChIJ123]",
            "[[ place: ChIJ123 ]]",
            "[[place:ChIJ123]]",
        ]
        for variant in variants:
            with self.subTest(variant=variant):
                self.assertEqual(normalize_place_references(variant, self.directory), "[[place:ChIJ123]]")

    def test_normalization_is_idempotent(self):
        text = "See [ChIJ123] and [[place:ChIJ123]] again."
        once = normalize_place_references(text, self.directory)
        self.assertEqual(normalize_place_references(once, self.directory), once)

    def test_unknown_ids_are_left_alone(self):
        text = "Maybe [ChIJ999] or [note]."
        self.assertEqual(normalize_place_references(text, self.directory), text)

    def test_prefix_of_longer_id_is_not_rewritten(self):
        directory = PlaceDirectory([sample_place("abc")])
        text = "[abcd] and [abc]"
        self.assertEqual(normalize_place_references(text, directory), "[abcd] and [[place:abc]]")

    def test_triple_brackets_are_not_touched(self):
        text = "[[[ChIJ123]]]"
        self.assertEqual(normalize_place_references(text, self.directory), text)


class PlaceDirectoryTests(unittest.TestCase):
    def test_payload_drops_empty_fields(self):
        directory = PlaceDirectory([sample_place("ChIJ123")])
        payload = directory.to_payload()

        self.assertIn("ChIJ123", payload)
        self.assertNotIn("review_count", payload["ChIJ123"])
        self.assertEqual(payload["ChIJ123"]["address"], "Barrio Escalante")

    def test_from_messages_collects_places_of_prior_turns(self):
        messages = [
            Message(id="m1", conversation_id="c1", role="user", content="hola"),
            Message(
                id="m2",
                conversation_id="c1",
                role="assistant",
                content="Try [[place:ChIJ123]]",
                places_context={"ChIJ123": sample_place("ChIJ123")},
            ),
        ]

        directory = PlaceDirectory.from_messages(messages)

        self.assertIn("ChIJ123", directory)


if __name__ == "__main__":
    unittest.main()
