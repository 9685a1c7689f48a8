from typing import List, Literal, Optional


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    # If no headers, take the first row as header and remove it from rows
    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [[escape_cell(c) for c in row] for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(row) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


def escape_cell(value) -> str:
    """Cells come from user input (names, notes); pipes would break the table."""
    if value is None:
        return "-"
    return str(value).replace("|", "\\|").replace("\n", " ")


def money(amount) -> str:
    return f"${float(amount or 0):,.2f}"


ROLE_LABELS = {
    "customer": "Customer",
    "seller": "Seller",
    "delivery": "Delivery Person",
    "admin": "Administrator",
}


def role_label(role: Optional[str]) -> str:
    # a user without a role row is shown as such, never as a customer
    return ROLE_LABELS.get(role, "No role")


def short_date(iso: Optional[str]) -> str:
    return iso[:10] if iso else "-"


def humanize(status: Optional[str]) -> str:
    """in_transit -> In transit"""
    return (status or "-").replace("_", " ").capitalize()


METRIC_LABELS = {
    "totalRevenue": "Revenue",
    "totalOrders": "Orders",
    "totalItems": "Items sold",
    "totalProducts": "Products",
    "totalCustomers": "Customers",
    "averageOrderValue": "Avg order value",
}
MONEY_METRICS = ("totalRevenue", "averageOrderValue")


def render_analytics_md(title: str, data: dict) -> str:
    """Markdown report for the seller and admin analytics payloads."""
    if "metrics" not in data:
        return f"### {title}\n\n{data.get('message', 'No data.')}"

    metrics = data["metrics"]
    md = f"### {title}\n\n"
    md += generate_markdown_table(
        [METRIC_LABELS.get(k, k) for k in metrics],
        [[money(v) if k in MONEY_METRICS else v for k, v in metrics.items()]],
    )

    md += "\n\n#### Sales by day\n\n"
    if data["salesData"]:
        md += generate_markdown_table(
            ["Date", "Amount", "Orders"],
            [[d["date"], money(d["amount"]), d["orders"]] for d in data["salesData"]],
            ["l", "r", "r"],
        )
    else:
        md += "No sales in this period."

    if data["categorySales"]:
        md += "\n\n#### By category\n\n"
        md += generate_markdown_table(
            ["Category", "Sales"],
            [[c["name"], money(c["value"])] for c in data["categorySales"]],
            ["l", "r"],
        )
    if data["topProducts"]:
        md += "\n\n#### Top products\n\n"
        md += generate_markdown_table(
            ["Product", "Units sold"],
            [[p["name"], p["sales"]] for p in data["topProducts"]],
            ["l", "r"],
        )
    return md
