from datetime import date

from bailbonds.contracts import extract_variables, localized, render_contract, standard_values


def test_extract_variables_in_order_without_duplicates() -> None:
    content = "{{clientName}} owes {{ bondAmount }} to {{agencyName}}. Signed {{clientName}}. {{ 1bad }}"
    assert extract_variables(content) == ["clientName", "bondAmount", "agencyName"]
    assert extract_variables(None) == []


def test_render_keeps_missing_placeholders() -> None:
    text, missing = render_contract(
        "Hello {{clientName}}, court on {{courtDate}} and {{courtDate}}.",
        {"clientName": "Maria Garcia", "courtDate": ""},
    )
    assert text == "Hello Maria Garcia, court on {{courtDate}} and {{courtDate}}."
    assert missing == ["courtDate"]


def test_standard_values() -> None:
    values = standard_values(
        {"first_name": "Maria", "last_name": "Garcia"},
        {"case_number": "CR-2024-002", "court_date": "2024-07-05"},
        {"bond_amount": "5000", "premium_amount": "500.00"},
        {"name": "BailBond Pro"},
        today=date(2024, 6, 15),
    )
    assert values == {
        "today": "Jun 15, 2024",
        "clientName": "Maria Garcia",
        "caseNumber": "CR-2024-002",
        "courtDate": "Jul 5, 2024",
        "bondAmount": "$5,000.00",
        "premiumAmount": "$500.00",
        "agencyName": "BailBond Pro",
    }
    assert set(standard_values(None, None, None, None, today=date(2024, 6, 15))) == {"today"}


def test_localized_falls_back_to_english() -> None:
    template = {"content": "Agreement", "content_es": "Acuerdo", "name": "Std", "name_es": ""}
    assert localized(template, "content", "es") == "Acuerdo"
    assert localized(template, "content", "en") == "Agreement"
    assert localized(template, "name", "es") == "Std"
    assert localized(template, "description", "es") == ""
