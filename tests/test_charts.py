"""Tests for charts module."""

import pytest

from messmass_admin.charts import blank_elements, chart_references, resize_elements, validate_chart
from messmass_admin.errors import ChartValidationError
from messmass_admin.variables import VariableRegistry


@pytest.fixture
def registry():
    return VariableRegistry.from_storage([])


def element(label, formula, color="#3b82f6", element_id=None):
    return {"id": element_id or label.lower(), "label": label, "formula": formula, "color": color}


def pie_chart(**overrides):
    chart = {
        "chartId": "gender-distribution",
        "title": "Gender Distribution",
        "type": "pie",
        "order": 1,
        "isActive": True,
        "elements": [element("Female", "[female]", "#ff6b9d"), element("Male", "[male]", "#4a90e2")],
    }
    chart.update(overrides)
    return chart


class TestValidateChart:
    def test_pie_chart_is_cleaned(self, registry):
        cleaned = validate_chart(pie_chart(chartId=" Gender-Distribution ", title="  Gender Distribution "), registry)
        assert cleaned["chartId"] == "gender-distribution"
        assert cleaned["title"] == "Gender Distribution"
        assert cleaned["elements"][0] == {"id": "female", "label": "Female", "formula": "[female]", "color": "#ff6b9d"}

    def test_active_defaults_to_true(self, registry):
        chart = pie_chart()
        del chart["isActive"]
        assert validate_chart(chart, registry)["isActive"] is True

    @pytest.mark.parametrize(
        "chart_type, count, message",
        [
            ("pie", 3, "Pie charts must have exactly 2 elements"),
            ("bar", 4, "Bar charts must have exactly 5 elements"),
            ("kpi", 2, "KPI charts must have exactly 1 element"),
        ],
    )
    def test_element_count_depends_on_type(self, registry, chart_type, count, message):
        elements = [element(f"E{index}", "[stadium]", element_id=f"e{index}") for index in range(count)]
        with pytest.raises(ChartValidationError, match=message):
            validate_chart(pie_chart(type=chart_type, elements=elements), registry)

    def test_bar_chart_with_five_elements(self, registry):
        elements = [element(f"E{index}", "[merched] * 2", element_id=f"e{index}") for index in range(5)]
        assert len(validate_chart(pie_chart(type="bar", elements=elements), registry)["elements"]) == 5

    def test_unknown_type(self, registry):
        with pytest.raises(ChartValidationError, match='must be "pie", "bar", or "kpi"'):
            validate_chart(pie_chart(type="donut"), registry)
        with pytest.raises(ChartValidationError, match='must be "pie", "bar", or "kpi"'):
            validate_chart(pie_chart(type=["pie"]), registry)

    def test_formula_must_use_known_variables(self, registry):
        chart = pie_chart(elements=[element("Female", "[female]"), element("Other", "[nobody] + [male]")])
        with pytest.raises(ChartValidationError, match="Element 2: Unknown variables in formula: nobody"):
            validate_chart(chart, registry)

    def test_formula_needs_a_variable(self, registry):
        chart = pie_chart(elements=[element("Female", "42"), element("Male", "[male]")])
        with pytest.raises(ChartValidationError, match="Element 1: Formula must reference at least one variable"):
            validate_chart(chart, registry)

    def test_custom_variable_allowed_in_formula(self):
        registry = VariableRegistry.from_storage(
            [
                {
                    "name": "vipGuests",
                    "label": "VIP Guests",
                    "type": "count",
                    "category": "Event",
                    "is_custom": True,
                }
            ]
        )
        chart = pie_chart(type="kpi", elements=[element("VIP", "[vipGuests]")])
        assert validate_chart(chart, registry)["elements"][0]["formula"] == "[vipGuests]"

    def test_errors_are_reported_together(self, registry):
        chart = pie_chart(chartId="", title="", order=0, elements=[element("", "[female]", "red"), element("Male", "[male]")])
        with pytest.raises(ChartValidationError) as excinfo:
            validate_chart(chart, registry)
        message = str(excinfo.value)
        for expected in ("Chart ID is required", "Chart title is required", "Order must be a positive integer", "Element 1 needs a label", "Element 1 color"):
            assert expected in message

    @pytest.mark.parametrize("order", [0, -2, "1", 1.5, True, None])
    def test_order_must_be_positive_integer(self, registry, order):
        with pytest.raises(ChartValidationError, match="Order must be a positive integer"):
            validate_chart(pie_chart(order=order), registry)

    def test_chart_id_pattern(self, registry):
        with pytest.raises(ChartValidationError, match="Chart ID can only contain"):
            validate_chart(pie_chart(chartId="gender distribution"), registry)

    def test_active_flag_must_be_boolean(self, registry):
        with pytest.raises(ChartValidationError, match="isActive must be a boolean"):
            validate_chart(pie_chart(isActive="yes"), registry)

    def test_element_ids_are_unique(self, registry):
        chart = pie_chart(elements=[element("Female", "[female]", element_id="x"), element("Male", "[male]", element_id="x")])
        with pytest.raises(ChartValidationError, match="unique"):
            validate_chart(chart, registry)

    def test_missing_element_id_is_generated(self, registry):
        chart = pie_chart(elements=[element("Female", "[female]", element_id=""), element("Male", "[male]")])
        chart["elements"][0]["id"] = ""
        assert validate_chart(chart, registry)["elements"][0]["id"] == "element-1"

    def test_elements_must_be_a_list(self, registry):
        with pytest.raises(ChartValidationError, match="Elements must be a list"):
            validate_chart(pie_chart(elements="[female]"), registry)


def test_blank_elements_follow_type():
    assert len(blank_elements("pie")) == 2
    assert len(blank_elements("bar")) == 5
    assert blank_elements("kpi") == [{"id": "element-1", "label": "", "formula": "", "color": "#3b82f6"}]


def test_resize_elements_keeps_leading_rows():
    rows = [element("Female", "[female]"), element("Male", "[male]")]
    assert resize_elements(rows, "kpi") == [rows[0]]
    resized = resize_elements(rows, "bar")
    assert resized[:2] == rows
    assert [row["id"] for row in resized[2:]] == ["element-3", "element-4", "element-5"]


def test_chart_references_deduplicates():
    chart = pie_chart(elements=[element("A", "[female] / [male]"), element("B", "[male] + [stadium]")])
    assert chart_references(chart) == ["female", "male", "stadium"]
