"""Tests for chapter word targets, section splits and short-book consolidation."""

import pytest


class TestChapterWordTarget:
    def test_total_stays_within_twenty_percent(self):
        from workflow.word_budget import chapter_word_target
        targets = [chapter_word_target(50000, n, 20) for n in range(1, 21)]
        assert sum(targets) == 53125
        assert 0.8 * 50000 <= sum(targets) <= 1.2 * 50000

    def test_position_weighting(self):
        from workflow.word_budget import chapter_word_target
        assert chapter_word_target(50000, 1, 20) == 2750
        assert chapter_word_target(50000, 10, 20) == 2500
        assert chapter_word_target(50000, 15, 20) == 2875
        assert chapter_word_target(50000, 20, 20) == 2625

    def test_short_book_targets(self):
        from workflow.word_budget import chapter_word_target
        assert [chapter_word_target(5000, n, 3) for n in (1, 2, 3)] == [1666, 1666, 1749]

    def test_zero_chapters_treated_as_one(self):
        from workflow.word_budget import chapter_word_target
        assert chapter_word_target(1000, 1, 0) == 1050


class TestSectionPlanning:
    @pytest.mark.parametrize("words,genre", [
        (100, "fantasy"), (800, "mystery"), (1666, "fantasy"), (3000, "thriller"),
        (10000, "literary"), (25000, "romance"),
    ])
    def test_section_count_bounded(self, words, genre):
        from workflow.word_budget import MAX_SECTIONS, section_count_for
        assert 1 <= section_count_for(words, genre) <= MAX_SECTIONS

    def test_small_chapter_is_single_section(self):
        from workflow.word_budget import section_count_for
        assert section_count_for(500, "literary") == 1

    def test_forced_split_when_genre_disallows_single(self):
        from workflow.word_budget import section_count_for
        assert section_count_for(1666, "fantasy") == 2
        assert section_count_for(1000, "mystery") == 1

    def test_long_chapter_capped_at_four(self):
        from workflow.word_budget import section_count_for
        assert section_count_for(10000, "literary") == 4

    def test_remainder_goes_to_last_section(self):
        from workflow.word_budget import plan_sections
        plans = plan_sections(1749, "fantasy")
        assert [p.word_target for p in plans] == [874, 875]
        assert sum(p.word_target for p in plans) == 1749

    def test_section_types_and_transitions(self):
        from models.enums import SectionType, TransitionType
        from workflow.word_budget import split_sections
        plans = split_sections(3000, 3, "romance")
        assert [p.section_type for p in plans] == [
            SectionType.OPENING, SectionType.DEVELOPMENT, SectionType.BRIDGE,
        ]
        assert plans[0].transition_in == TransitionType.SCENE_BREAK
        assert plans[1].transition_in == TransitionType.EMOTIONAL_BRIDGE
        assert [p.number for p in plans] == [1, 2, 3]

    def test_initial_section_count_bands(self):
        from workflow.word_budget import initial_section_count
        assert initial_section_count(400, 3) == 1
        assert initial_section_count(900, 3) == 2
        assert initial_section_count(1500, 5) == 3
        assert initial_section_count(5000, 6) == 4
        assert initial_section_count(5000, 0) == 1


class TestGenreStructure:
    def test_normalizes_case_and_punctuation(self):
        from workflow.word_budget import GENRE_STRUCTURES, get_genre_structure
        assert get_genre_structure("  FANTASY ") == GENRE_STRUCTURES["fantasy"]
        assert get_genre_structure("Sci-Fi") == GENRE_STRUCTURES["sci-fi"]

    def test_unknown_genre_gets_default(self):
        from workflow.word_budget import DEFAULT_STRUCTURE, get_genre_structure
        assert get_genre_structure("cookbook") == DEFAULT_STRUCTURE
        assert get_genre_structure("") == DEFAULT_STRUCTURE


class TestConsolidation:
    def _plans(self, count):
        from models.story_bible import ChapterPlan, ScenePlan
        return [
            ChapterPlan(number=n, title=f"Part {n}", purpose=f"p{n}",
                        scenes=[ScenePlan(purpose=f"s{n}")], research_focus=["tides"])
            for n in range(1, count + 1)
        ]

    def test_chapter_caps(self):
        from workflow.word_budget import max_chapters_for_words
        assert max_chapters_for_words(900) == 1
        assert max_chapters_for_words(1500) == 2
        assert max_chapters_for_words(5000) == 4
        assert max_chapters_for_words(10000) == 6
        assert max_chapters_for_words(10001) is None

    def test_twelve_plans_merge_to_two(self):
        from workflow.word_budget import consolidate_chapter_plans
        merged = consolidate_chapter_plans(self._plans(12), 1500)
        assert [p.number for p in merged] == [1, 2]
        assert merged[0].title == "Part 1 & More"
        assert len(merged[0].scenes) == 6
        assert merged[0].research_focus == ["tides"]
        assert merged[1].word_count_target == 750

    def test_no_cap_renumbers_only(self):
        from workflow.word_budget import consolidate_chapter_plans
        plans = self._plans(3)
        plans[0].number = 7
        merged = consolidate_chapter_plans(plans, 50000)
        assert [p.number for p in merged] == [1, 2, 3]
        assert merged[0].title == "Part 1"

    def test_consolidation_is_idempotent(self):
        from workflow.word_budget import consolidate_chapter_plans
        once = consolidate_chapter_plans(self._plans(12), 1500)
        assert consolidate_chapter_plans(once, 1500) == once
