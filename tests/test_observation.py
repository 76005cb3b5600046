import pytest

from retailsync.logic.observation import EMPTY, RULES, ObservationLinks, parse_observation


def test_note_number_drops_sequence_and_keeps_zeros():
    links = parse_observation("DEVOLUCAO NOTA(S) FISCAL(IS): 1/000054118")
    assert links == ObservationLinks(new_sale_number="000054118", new_sale_nfe_key=None)


def test_cancellation_prefix_is_accepted():
    links = parse_observation("CANCELAMENTO/ESTORNO DEVOLUCAO NOTA(S) FISCAL(IS): 3/000012")
    assert links.new_sale_number == "000012"


def test_plain_return_is_ignored():
    assert parse_observation("[REFERENTE A DEVOLUÇÃO: C.O.O: 113 ECF: 001]") == EMPTY


@pytest.mark.parametrize(
    "text",
    [
        "[REFERENTE A DEVOLUÇÃO: C.O.O: 113 ECF: 001] DEVOLUCAO NOTA(S) FISCAL(IS): 1/000054118",
        "[referente a devolucao: C.O.O: 9] [REFERENTE A TROCA: CHAVE: 2325010000]",
    ],
)
def test_ignore_rule_wins_over_everything(text):
    assert parse_observation(text) == EMPTY


def test_nfe_key_is_extracted():
    links = parse_observation("[REFERENTE A TROCA: CHAVE: 23250112345678000190550010000055121000055120]")
    assert links == ObservationLinks(None, "23250112345678000190550010000055121000055120")


def test_both_rules_apply_independently():
    links = parse_observation(
        "devolucao nota(s) fiscal(is): 2/000777 [referente a troca: chave: 12345]"
    )
    assert links == ObservationLinks("000777", "12345")


@pytest.mark.parametrize("text", [None, "", "   ", "TROCA SEM REFERENCIA", "DEVOLUCAO NOTA(S) FISCAL(IS): sem numero"])
def test_unmatched_text_gives_empty_links(text):
    assert parse_observation(text) == EMPTY


def test_rules_are_ordered_with_ignore_first():
    assert [rule.name for rule in RULES] == ["ignore", "note_number", "nfe_key"]
    assert RULES[0].stop is True


def test_custom_rule_order_is_respected():
    without_ignore = tuple(rule for rule in RULES if rule.name != "ignore")
    links = parse_observation(
        "[REFERENTE A DEVOLUÇÃO: X] DEVOLUCAO NOTA(S) FISCAL(IS): 1/55", rules=without_ignore
    )
    assert links.new_sale_number == "55"


@pytest.mark.parametrize("value", [12345, 1.5, ["DEVOLUCAO NOTA(S) FISCAL(IS): 1/9"], {"text": "x"}])
def test_non_text_observation_has_no_links(value):
    assert parse_observation(value) == EMPTY
