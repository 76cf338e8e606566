"""Tests for domain synonym query expansion."""

import pytest

from indexer.models import SynonymGroup
from pipelines.synonyms import (
    SynonymExpander,
    contains_synonyms,
    expand_query_with_synonyms,
    get_suggested_terms,
    load_synonym_groups,
)


@pytest.fixture(scope="module")
def expander():
    return SynonymExpander.from_yaml()


class TestSynonymLoading:
    """Loading the synonym table from YAML."""

    def test_default_table_loads(self):
        groups = load_synonym_groups()
        canonicals = [g.canonical for g in groups]
        assert "salesforce connector" in canonicals
        assert "Product Experience Manager" in canonicals
        assert all(isinstance(g.synonyms, tuple) for g in groups)

    def test_custom_path(self, tmp_path):
        path = tmp_path / "synonyms.yaml"
        path.write_text(
            "- canonical: Studio\n"
            "  synonyms: [visual editor]\n"
            "  context: development\n"
        )
        groups = load_synonym_groups(path)
        assert groups == [SynonymGroup("Studio", ("visual editor",), "development")]

    def test_non_list_file_rejected(self, tmp_path):
        path = tmp_path / "synonyms.yaml"
        path.write_text("canonical: Studio\n")
        with pytest.raises(ValueError):
            load_synonym_groups(path)

    def test_group_without_canonical_rejected(self):
        with pytest.raises(ValueError):
            SynonymGroup.from_dict({"synonyms": ["a"]})

    def test_later_group_wins_for_shared_synonym(self, expander):
        # "setup" is listed under setup/create/configure groups
        assert expander.synonym_to_canonical["setup"] == "configure"
        assert expander.synonym_to_canonical["build"] == "create"


class TestExpand:
    """Query expansion behaviour."""

    def test_salesforce_scenario(self, expander):
        query = "I want to setup a salesforce connect"
        expanded = expander.expand(query)

        assert expanded.startswith(query)
        assert "salesforce connector" in expanded
        assert expander.contains_synonyms(query)
        assert "salesforce connector" in expander.suggested_canonical_terms(query)

    def test_phrase_match_suppresses_inner_shorter_synonym(self, expander):
        # "sale" inside "salesforce connect" must not pull in Promotions Builder
        expanded = expander.expand("I want to setup a salesforce connect")
        assert "Promotions Builder" not in expanded

    def test_matched_phrase_not_repeated_as_sibling(self, expander):
        query = "open the product experience page"
        assert expander.expand(query) == (
            query + " Product Experience Manager PXM product manager catalog management"
        )

    def test_no_recognised_terms_returns_query_unchanged(self, expander):
        query = "What is the weather like today?"
        assert expander.expand(query) == query
        assert not expander.contains_synonyms(query)
        assert expander.suggested_canonical_terms(query) == []

    @pytest.mark.parametrize("query", ["", "   "])
    def test_blank_query_returned_unchanged(self, expander, query):
        assert expander.expand(query) == query

    def test_terms_are_unique_and_in_insertion_order(self, expander):
        query = "shopping cart basket"
        assert expander.expand(query) == query + " cart basket bag shopping cart"

    def test_longest_match_wins(self):
        expander = SynonymExpander([
            SynonymGroup("Studio", ("visual builder low-code",)),
            SynonymGroup("Composer", ("low-code", "no-code")),
        ])
        query = "How do I use the visual builder low-code tool"
        expanded = expander.expand(query)

        assert expanded.startswith(query)
        assert "Studio" in expanded
        assert "Composer" not in expanded
        assert expander.suggested_canonical_terms(query) == ["Studio"]

    def test_single_word_query_expands_whole_group(self):
        expander = SynonymExpander([
            SynonymGroup("cart", ("basket", "bag", "trolley", "sack")),
        ])
        expanded = expander.expand("bag")
        # phrase pass adds every sibling except the match
        assert expanded == "bag cart basket trolley sack"

    def test_expand_query_keeps_both_forms(self, expander):
        result = expander.expand_query("PXM pricing")
        assert result.original_text == "PXM pricing"
        assert result.was_expanded
        assert result.expanded_text.startswith("PXM pricing")

    def test_expansion_is_single_pass(self, expander):
        once = expander.expand("PXM")
        twice = expander.expand(once)
        assert twice.startswith(once)

    def test_groups_for_context(self, expander):
        canonicals = {g.canonical for g in expander.groups_for_context("commerce")}
        assert canonicals == {"cart", "checkout"}


class TestModuleHelpers:
    """Module-level convenience functions use the default table."""

    def test_helpers(self):
        query = "salesforce connect setup"
        assert "salesforce connector" in expand_query_with_synonyms(query)
        assert contains_synonyms(query)
        assert get_suggested_terms(query)[0] == "salesforce connector"
