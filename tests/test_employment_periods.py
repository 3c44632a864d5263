from datetime import date

from services.employment_periods import (
    EmployeeProfile,
    EmploymentHistory,
    SalaryPeriod,
    merge_employments,
    parse_periods,
)


def test_periods_are_sorted_chronologically():
    history = EmploymentHistory.from_payload(
        {
            "id": "emp-1",
            "salary": [
                {"start_date": "2024-01-01", "month_wage": 3200},
                {"start_date": "2023-01-01", "month_wage": 3000},
            ],
        }
    )
    assert [period.start_date for period in history.salary] == [date(2023, 1, 1), date(2024, 1, 1)]
    assert history.salary[0].month_wage == 3000.0


def test_malformed_items_are_skipped_with_issue():
    issues = []
    periods = parse_periods(
        [
            {"start_date": "0001-01-01T00:00:00", "month_wage": 1},
            "garbage",
            {"start_date": "2024-05-01", "month_wage": "2500,50"},
        ],
        SalaryPeriod.from_payload,
        label="salary",
        issues=issues,
    )
    assert len(periods) == 1
    assert periods[0].month_wage == 2500.5
    assert issues == ["salary[0]: missing start_date", "salary[1]: not an object"]


def test_non_mapping_payload_yields_empty_history():
    history = EmploymentHistory.from_payload(None)
    assert history.salary == [] and history.hours == [] and history.contracts == []
    assert history.issues


def test_contract_duration_is_normalised():
    history = EmploymentHistory.from_payload(
        {"contracts": [{"start_date": "2024-01-01", "contract_duration": " Fixed ", "is_signed": True}]}
    )
    contract = history.contracts[0]
    assert contract.contract_duration == "fixed"
    assert contract.is_signed is True


def test_employee_profile_display_name_fallbacks():
    assert EmployeeProfile.from_payload({"first_name": "Ada", "last_name": "Lovelace"}).display_name == "Ada Lovelace"
    assert EmployeeProfile.from_payload({"display_name": "Grace"}).display_name == "Grace"
    assert EmployeeProfile.from_payload({}).display_name == "Employee"


def test_merge_employments_concatenates_periods():
    merged = merge_employments(
        [
            {"id": "a", "start_date": "2022-01-01", "salary": [{"start_date": "2022-01-01", "month_wage": 2000}]},
            {"id": "b", "start_date": "2020-06-01", "salary": [{"start_date": "2020-06-01", "month_wage": 1800}]},
        ]
    )
    assert len(merged["salary"]) == 2
    assert merged["start_date"] == "2020-06-01"
    assert [item["id"] for item in merged["employments"]] == ["a", "b"]
