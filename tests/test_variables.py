"""Tests for cross-prompt variable aggregation."""

import copy

from promptcompare.config import Configuration, load_config
from promptcompare.variables import aggregate, main_variable

from conftest import SAMPLE_CONFIG


def test_empty_configuration_yields_nothing():
    assert aggregate(Configuration()) == []


def test_first_occurrence_order(config):
    names = [variable.name for variable in aggregate(config)]
    assert names == ["article", "audience", "count"]


def test_prompt_ids_track_every_referencing_prompt(config):
    by_name = {variable.name: variable for variable in aggregate(config)}
    assert by_name["article"].prompt_ids == ["summary", "bullets"]
    assert by_name["audience"].prompt_ids == ["summary", "bullets"]
    assert by_name["count"].prompt_ids == ["bullets"]


def test_descriptions_merge_without_repeats(config):
    by_name = {variable.name: variable for variable in aggregate(config)}
    assert by_name["article"].description == "Article text\nSource text"
    # Identical description from the second prompt is not appended again
    assert by_name["audience"].description == "Target reader"


def test_description_substring_is_not_appended():
    payload = copy.deepcopy(SAMPLE_CONFIG)
    payload["prompts"][1]["variables"][1]["description"] = "Article"
    by_name = {variable.name: variable for variable in aggregate(load_config(payload))}
    assert by_name["article"].description == "Article text"


def test_main_flag_is_or_across_prompts(config):
    by_name = {variable.name: variable for variable in aggregate(config)}
    assert by_name["article"].is_main is True
    assert by_name["audience"].is_main is False


def test_main_flag_set_by_later_prompt():
    payload = copy.deepcopy(SAMPLE_CONFIG)
    payload["prompts"][0]["variables"][0]["isMain"] = False
    payload["prompts"][1]["variables"][0]["isMain"] = True
    by_name = {variable.name: variable for variable in aggregate(load_config(payload))}
    assert by_name["count"].is_main is True
    assert by_name["article"].is_main is False


def test_seeded_from_first_declaration(config):
    by_name = {variable.name: variable for variable in aggregate(config)}
    assert by_name["audience"].default == "engineers"
    assert by_name["count"].type == "number"


def test_aggregate_is_idempotent(config):
    assert aggregate(config) == aggregate(config)


def test_prompt_ids_have_no_duplicates_for_k_prompts():
    payload = copy.deepcopy(SAMPLE_CONFIG)
    for index in range(3):
        extra = copy.deepcopy(payload["prompts"][0])
        extra["id"] = f"extra_{index}"
        payload["prompts"].append(extra)

    by_name = {variable.name: variable for variable in aggregate(load_config(payload))}
    article = by_name["article"]
    assert len(article.prompt_ids) == 5
    assert len(set(article.prompt_ids)) == 5


def test_main_variable(config):
    assert main_variable(aggregate(config)).name == "article"
    assert main_variable([]) is None
