"""Unit tests for the buyer view layer: filtering, sorting, paging and export."""

import pandas as pd
import pytest

from buyer_intel_data.query import (
    CSV_BOM,
    date_range_label,
    export_csv,
    export_filename,
    filter_buyers,
    format_full_date,
    paginate,
    sort_buyers,
    summarize_buyers,
    toggle_sort,
    total_pages,
)


def _buyers() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "buyer_id": ["globex", "initech", "hooli", "umbrella"],
            "name": ["Globex", 'Initech "West"', "Hooli", "Umbrella"],
            "registry": ["verra"] * 4,
            "total_volume": [3500, 200, 3500, 60000],
            "retirement_count": [2, 1, 1, 4],
            "latest_date": ["2025-01-10", "2023-04-02", "not a date", "2024-10-27"],
            "latest_transaction_at": pd.to_datetime(["2025-01-10", "2023-04-02", None, "2024-10-27"]),
            "latest_project_name": ["Katingan", "Unknown Project", "Rimba, Raya", "Kasigau"],
            "latest_project_id": ["1477", "N/A", "674", "612"],
            "latest_project_type": ["REDD+", "Unknown", "ARR", "REDD+"],
            "project_types": [["REDD+"], ["Unknown"], ["ARR", "Cookstoves"], ["REDD+"]],
            "tags": [["Active"], [], [], ["Repeat Buyer", "High Volume"]],
            "is_qualified": [True, False, True, True],
        }
    )


def test_filter_focus_keeps_qualified_only():
    result = filter_buyers(_buyers(), view_mode="focus")
    assert result["buyer_id"].tolist() == ["globex", "hooli", "umbrella"]


def test_filter_search_matches_name_or_project_type():
    buyers = _buyers()
    assert filter_buyers(buyers, search="INITECH", view_mode="all")["buyer_id"].tolist() == ["initech"]
    assert filter_buyers(buyers, search="cookstove", view_mode="all")["buyer_id"].tolist() == ["hooli"]
    assert filter_buyers(buyers, search="redd", view_mode="focus")["buyer_id"].tolist() == [
        "globex",
        "umbrella",
    ]


def test_filter_rejects_unknown_view_mode():
    with pytest.raises(ValueError):
        filter_buyers(_buyers(), view_mode="everything")


def test_sort_by_volume_is_stable():
    result = sort_buyers(_buyers(), key="total_volume", direction="desc")
    assert result["buyer_id"].tolist() == ["umbrella", "globex", "hooli", "initech"]

    result = sort_buyers(_buyers(), key="total_volume", direction="asc")
    assert result["buyer_id"].tolist() == ["initech", "globex", "hooli", "umbrella"]


def test_sort_by_latest_date_puts_unparseable_last_when_descending():
    result = sort_buyers(_buyers(), key="latest_date", direction="desc")
    assert result["buyer_id"].tolist() == ["globex", "umbrella", "initech", "hooli"]


def test_sort_rejects_unknown_key():
    with pytest.raises(ValueError):
        sort_buyers(_buyers(), key="name")


def test_toggle_sort():
    assert toggle_sort({"key": "total_volume", "dir": "desc"}, "total_volume") == {
        "key": "total_volume",
        "dir": "asc",
    }
    assert toggle_sort({"key": "total_volume", "dir": "asc"}, "total_volume")["dir"] == "desc"
    assert toggle_sort({"key": "total_volume", "dir": "asc"}, "latest_date") == {
        "key": "latest_date",
        "dir": "desc",
    }


def test_pagination():
    buyers = pd.DataFrame({"n": range(23)})
    assert total_pages(buyers) == 3
    assert total_pages(buyers.iloc[0:0]) == 1
    assert paginate(buyers, page=1)["n"].tolist() == list(range(10))
    assert paginate(buyers, page=3)["n"].tolist() == [20, 21, 22]
    assert paginate(buyers, page=2, per_page=5)["n"].tolist() == [5, 6, 7, 8, 9]


def test_summarize_buyers():
    stats = summarize_buyers(_buyers())
    assert stats == {
        "buyers": 4,
        "total_volume": 67200,
        "total_volume_millions": 0.1,
        "qualified": 3,
    }


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2025-10-27", "Oct 27, 2025"),
        ("2024", "Jan 1, 2024"),
        (pd.Timestamp(2023, 4, 2), "Apr 2, 2023"),
        ("not a date", "N/A"),
        (None, "N/A"),
        (pd.NaT, "N/A"),
    ],
)
def test_format_full_date(value, expected):
    assert format_full_date(value) == expected


def test_date_range_label():
    assert date_range_label("12m") == "Last 12 Months"
    assert date_range_label("2019") == "2019"


def test_export_filename():
    assert (
        export_filename("car", "24m", pd.Timestamp(2026, 10, 18))
        == "buyer-intelligence-car-24m-2026-10-18.csv"
    )


def test_export_csv(tmp_path):
    path = tmp_path / "export.csv"
    content = export_csv(_buyers(), registry="car", date_range="12m", path=path)

    assert content.startswith(CSV_BOM)
    assert path.read_text(encoding="utf-8") == content

    lines = content[len(CSV_BOM):].splitlines()
    assert lines[0] == (
        '"Company Name","Total Volume (tCO2e)","Retirement Events","Last Activity",'
        '"Recent Project","Project ID","Project Types","Tags","Registry","Date Filter"'
    )
    assert len(lines) == 5
    assert lines[1] == (
        '"Globex",3500,2,"Jan 10, 2025","Katingan","1477","REDD+","Active",'
        '"Climate Action Reserve","Last 12 Months"'
    )
    assert lines[2].startswith('"Initech ""West""",200,1,"Apr 2, 2023"')
    assert '"Rimba, Raya"' in lines[3]
    assert '"ARR, Cookstoves"' in lines[3]
    assert '"N/A"' in lines[3]
    assert '"Repeat Buyer, High Volume"' in lines[4]


def test_export_csv_empty():
    content = export_csv(_buyers().iloc[0:0], registry="verra", date_range="all")
    assert content.count("\n") == 1
