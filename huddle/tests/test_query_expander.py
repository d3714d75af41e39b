"""Tests for question normalization and query expansion."""

import pytest


class TestNormalizeQuestion:
    def test_trims_and_collapses_whitespace(self):
        from huddle.retriever.query_expander import normalize_question

        assert normalize_question("  How   much\tis\n tuition  ") == "How much is tuition"

    def test_trailing_punctuation_run_becomes_single_question_mark(self):
        from huddle.retriever.query_expander import normalize_question

        assert normalize_question("How much?!!") == "How much?"
        assert normalize_question("Tell me the schedule.") == "Tell me the schedule?"

    def test_empty_input(self):
        from huddle.retriever.query_expander import normalize_question

        assert normalize_question("") == ""
        assert normalize_question(None) == ""
        assert normalize_question("   ") == ""


class TestQueryExpander:
    @pytest.fixture
    def expander(self):
        from huddle.retriever.query_expander import QueryExpander
        return QueryExpander()

    def test_original_first_and_deterministic(self, expander):
        question = "How much does TSA cost?"

        first = expander.expand(question)
        second = expander.expand(question)

        assert first[0] == question
        assert first == second

    def test_cost_rephrasing(self, expander):
        result = expander.expand("How much does TSA cost?")

        assert result == [
            "How much does TSA cost?",
            "How much does TSA cost",
            "what is the cost of TSA?",
        ]

    def test_synonym_substitution_whole_word(self, expander):
        result = expander.expand("What are the charges?")

        assert result == [
            "What are the charges?",
            "What are the charges",
            "What are the fees?",
        ]

    def test_synonym_is_case_insensitive(self):
        from huddle.retriever.query_expander import QueryExpander

        result = QueryExpander(max_variations=5).expand("Check the DASH")

        assert "Check the Dash system" in result

    def test_synonym_does_not_match_inside_words(self, expander):
        assert expander.expand("Where is the mapping") == ["Where is the mapping"]

    def test_caps_at_max_variations(self):
        from huddle.retriever.query_expander import QueryExpander

        result = QueryExpander(max_variations=5).expand("What's the pricing?")

        assert len(result) == 5
        assert result[:2] == ["What's the pricing?", "What's the pricing"]
        assert "What's the cost?" in result

    def test_no_duplicates(self):
        from huddle.retriever.query_expander import QueryExpander

        result = QueryExpander(max_variations=5).expand("what's the price of the price?")

        assert len(result) == len(set(result))

    def test_rephrasing_applies_once(self):
        from huddle.retriever.query_expander import QueryExpander

        result = QueryExpander(max_variations=5).expand("tell me about fees and tell me about pickup")

        assert "what is fees and tell me about pickup" in result

    def test_bare_how_much(self, expander):
        result = expander.expand("how much?")

        assert result == ["how much?", "how much", "how much does TSA cost"]

    def test_kid_age_rephrasing_keeps_number(self, expander):
        assert expander.expand("My kid is 7") == ["My kid is 7", "my 7 year old"]

    def test_worst_case_is_question_only(self, expander):
        assert expander.expand("xyz") == ["xyz"]

    def test_custom_tables(self):
        from huddle.retriever.query_expander import QueryExpander

        expander = QueryExpander(
            rephrasings=[(r"when is (.*)", r"what time is \1")],
            synonyms={"camp": ["program"]},
            max_variations=5,
        )

        assert expander.expand("when is camp") == ["when is camp", "when is program", "what time is camp"]

    def test_rejects_zero_variations(self):
        from huddle.retriever.query_expander import QueryExpander

        with pytest.raises(ValueError):
            QueryExpander(max_variations=0)

    def test_rejects_more_than_five_variations(self):
        from huddle.retriever.query_expander import QueryExpander

        with pytest.raises(ValueError):
            QueryExpander(max_variations=6)
