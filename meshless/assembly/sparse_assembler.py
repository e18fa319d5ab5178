"""
Sparse matrix assembly from per-row stencils.

Each row of a meshless system couples one weight function to the basis
functions of its stencil. Rows are gathered as (row, col, val) triplets
and converted once to CSR:

    1. Loop over rows
    2. Ask the row callback for (columns, values)
    3. Check every column against the global index space
    4. Accumulate COO triplets
    5. Convert to CSR (duplicate entries are summed)
"""

import numpy as np
from scipy.sparse import coo_matrix

from ..exceptions import InvariantError


def assemble_rows(number_of_rows, number_of_columns, row_function):
    """
    Assemble a sparse matrix row by row.

    Parameters
    ----------
    number_of_rows : int
    number_of_columns : int
    row_function : callable
        ``row_function(i) -> (columns, values)`` with integer column
        indices and matching values.

    Returns
    -------
    matrix : csr_matrix, shape (number_of_rows, number_of_columns)

    Raises
    ------
    InvariantError
        If a row references a column outside ``[0, number_of_columns)``
        or returns mismatched column/value arrays.
    """
    rows = []
    cols = []
    vals = []
    for i in range(number_of_rows):
        columns, values = row_function(i)
        columns = np.asarray(columns, dtype=np.int64)
        values = np.asarray(values, dtype=np.float64)
        if columns.shape != values.shape:
            raise InvariantError(
                f"row {i}: {columns.size} column indices but {values.size} values"
            )
        if columns.size and (columns.min() < 0 or columns.max() >= number_of_columns):
            bad = columns[(columns < 0) | (columns >= number_of_columns)]
            raise InvariantError(
                f"row {i}: stencil references basis indices {bad.tolist()} "
                f"outside [0, {number_of_columns})"
            )
        rows.append(np.full(columns.size, i, dtype=np.int64))
        cols.append(columns)
        vals.append(values)

    if number_of_rows == 0:
        return coo_matrix((number_of_rows, number_of_columns)).tocsr()

    return coo_matrix((np.concatenate(vals),
                       (np.concatenate(rows), np.concatenate(cols))),
                      shape=(number_of_rows, number_of_columns)).tocsr()
