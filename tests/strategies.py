"""Hypothesis strategies for rowstore rows and filters."""

from hypothesis import strategies as st

from rowstore.models.query import Filter, OrderBy

column_names = st.sampled_from(["id", "title", "views", "published", "created_at", "tags"])

scalar_values = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10_000, max_value=10_000),
    st.floats(allow_nan=False, allow_infinity=False, width=32),
    st.text(max_size=20),
)

json_values = st.recursive(
    scalar_values,
    lambda children: st.one_of(
        st.lists(children, max_size=3),
        st.dictionaries(st.text(min_size=1, max_size=5), children, max_size=3),
    ),
    max_leaves=6,
)

rows = st.dictionaries(column_names, json_values, max_size=6)

row_lists = st.lists(rows, max_size=12)

# Values that sort under one tier: all numbers, all dates, or all words.
numbers = st.one_of(
    st.integers(min_value=-1000, max_value=1000),
    st.floats(min_value=-1000, max_value=1000, allow_nan=False),
)

iso_dates = st.dates().map(lambda d: d.isoformat())

words = st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=8)

filters = st.builds(
    Filter,
    column=column_names,
    op=st.sampled_from(["eq", "neq", "lt"]),
    value=scalar_values,
)

order_bys = st.builds(OrderBy, column=column_names, ascending=st.booleans())
