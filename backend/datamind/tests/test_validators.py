from decimal import Decimal

import pytest

from datamind.utils.exceptions import ValidationFailedError
from datamind.utils.formatting import markdown_table, to_json_safe
from datamind.utils.validators import (
    detect_sql_statement,
    qualified_name,
    strip_code_fences,
    validate_identifier,
)

@pytest.mark.parametrize("text,keyword", [
    ("SELECT * FROM orders", "SELECT"),
    ("  select region, sum(total) from sales group by 1", "SELECT"),
    ("WITH t AS (SELECT 1) SELECT * FROM t", "WITH"),
    ("show tables", "SHOW"),
    ("DESCRIBE TABLE orders", "DESCRIBE"),
    ("INSERT INTO t VALUES (1)", "INSERT"),
])
def test_detects_sql_statements(text, keyword):
    assert detect_sql_statement(text) == keyword

@pytest.mark.parametrize("text", [
    "create a line chart",
    "select database SALES",
    "show me revenue by region",
    "describe the sales trend",
    "",
])
def test_sentences_are_not_sql(text):
    assert detect_sql_statement(text) is None

def test_identifiers():
    assert validate_identifier('"Orders"') == "Orders"
    assert qualified_name("SALES", None, "PUBLIC") == "SALES.PUBLIC"
    with pytest.raises(ValidationFailedError):
        validate_identifier("orders; drop table x")

def test_strip_code_fences():
    assert strip_code_fences("```sql\nSELECT 1\n```") == "SELECT 1"
    assert strip_code_fences("SELECT 1") == "SELECT 1"

def test_markdown_table_truncates():
    rows = [{"A": i, "B": None} for i in range(3)]
    table = markdown_table(["A", "B"], rows, 2)
    assert table.splitlines()[:3] == ["| A | B |", "| --- | --- |", "| 0 | NULL |"]
    assert table.endswith("... and 1 more rows.")

def test_to_json_safe_decimal():
    assert to_json_safe(Decimal("3")) == 3
    assert to_json_safe(Decimal("2.5")) == 2.5
