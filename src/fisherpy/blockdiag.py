"""Block-diagonal density matrices and fast superoperator application.

In the Dicke basis the density matrix of a permutation-symmetric spin
ensemble is block diagonal (one block per total angular momentum ``j``).
Applying a Liouville-space superoperator to such a matrix only needs the
superoperator entries that connect diagonal blocks. This module
precomputes, for every stored entry of a superoperator, the block and the
local row/column it reads from and writes to, so that each application is
a single gather/scatter over a flat buffer.

Classes:
        - `BlockDiagonal`: dense diagonal blocks stored in one contiguous buffer.
        - `SuperoperatorIndices`: per-entry (block, row, column) coordinates.
        - `PatternStableSuperoperator`: superoperator with frozen nonzero
          coordinates and cached indices; only its values can change.

Functions:
        - `superoperator_indices`: compute `SuperoperatorIndices` for a sparse superoperator.
        - `apply_superoperator`: ``target ← S(source)`` for block-diagonal matrices.

Conventions:
        - Superoperators act on column-stacked vectors: the entry at
          ``(row, col)`` maps source element ``(col % N, col // N)`` to target
          element ``(row % N, row // N)``, with ``N = sum(block_sizes)``.
        - Entries whose source or target element lies outside the diagonal
          blocks are marked with block ``-1`` and ignored.

Example:
    >>> sizes = (2, 1)
    >>> rho = BlockDiagonal.from_matrix(np.diag([0.5, 0.25, 0.25]), sizes)
    >>> out = BlockDiagonal(sizes)
    >>> S = sp.sparse.identity(9, format="csc")
    >>> np.allclose(apply_superoperator(out, S, rho).to_dense(), rho.to_dense())
    True
"""

from dataclasses import dataclass

import numpy as np
import scipy as sp

from .errors import DimensionError, InvalidArgumentError
from .operators import chop, matrix_to_vector, vector_to_matrix


def _check_block_sizes(block_sizes) -> tuple[int, ...]:
    sizes = tuple(int(s) for s in block_sizes)
    if not sizes or min(sizes) < 1:
        raise InvalidArgumentError(f"Block sizes must be positive, got {block_sizes}.")
    return sizes


class BlockDiagonal:
    """Block-diagonal square matrix with dense blocks.

    The blocks are row-major views into the flat buffer `data`, so in-place
    operations on `data` act on all blocks at once.

    Args:
        block_sizes: Sizes of the diagonal blocks.
        dtype: Data type of the entries.
        data (Optional[np.ndarray]): Existing flat buffer of length
            ``sum(s**2 for s in block_sizes)`` to wrap (not copied).
    """

    def __init__(self, block_sizes, dtype=complex, data=None):
        self.block_sizes = _check_block_sizes(block_sizes)
        self._offsets = np.concatenate(([0], np.cumsum([s * s for s in self.block_sizes])))
        if data is None:
            data = np.zeros(self._offsets[-1], dtype=dtype)
        elif data.ndim != 1 or data.size != self._offsets[-1]:
            raise DimensionError(
                f"Buffer of size {data.size} does not fit blocks {self.block_sizes}."
            )
        self.data = data
        self.blocks = [
            self.data[o : o + s * s].reshape(s, s)
            for o, s in zip(self._offsets[:-1], self.block_sizes)
        ]

    @classmethod
    def from_matrix(cls, M, block_sizes) -> "BlockDiagonal":
        """Copy the diagonal blocks of a (dense or sparse) square matrix."""
        sizes = _check_block_sizes(block_sizes)
        dim = sum(sizes)
        if M.shape != (dim, dim):
            raise DimensionError(f"Matrix of shape {M.shape} does not fit blocks {sizes}.")
        dense = M.toarray() if sp.sparse.issparse(M) else np.asarray(M)
        result = cls(sizes, dtype=np.result_type(dense.dtype, complex))
        start = 0
        for block, s in zip(result.blocks, sizes):
            block[...] = dense[start : start + s, start : start + s]
            start += s
        return result

    @classmethod
    def from_vector(cls, v, block_sizes) -> "BlockDiagonal":
        """Diagonal blocks of a column-stacked vectorised matrix."""
        return cls.from_matrix(vector_to_matrix(v), block_sizes)

    @property
    def dim(self) -> int:
        return sum(self.block_sizes)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.dim, self.dim)

    def trace(self) -> complex:
        return sum(np.trace(b) for b in self.blocks)

    def fill(self, value):
        self.data.fill(value)
        return self

    def copy(self) -> "BlockDiagonal":
        return BlockDiagonal(self.block_sizes, data=self.data.copy())

    def scale(self, alpha):
        """In-place ``self ← alpha * self``."""
        self.data *= alpha
        return self

    def axpy(self, alpha, other: "BlockDiagonal"):
        """In-place ``self ← self + alpha * other``."""
        if other.block_sizes != self.block_sizes:
            raise DimensionError("Block structures differ.")
        self.data += alpha * other.data
        return self

    def chop(self, tol: float):
        chop(self.data, tol)
        return self

    def to_dense(self) -> np.ndarray:
        return sp.linalg.block_diag(*self.blocks)

    def to_vector(self) -> np.ndarray:
        return matrix_to_vector(self.to_dense())

    def __repr__(self) -> str:
        return f"BlockDiagonal(block_sizes={self.block_sizes})"


@dataclass(frozen=True)
class SuperoperatorIndices:
    """Block, row and column indices for applying a superoperator.

    Entry ``k`` of the superoperator writes to ``blocks[br[k]][ir[k], jr[k]]``
    and reads from ``blocks[bc[k]][ic[k], jc[k]]``; a block index of ``-1``
    marks an entry outside the block-diagonal structure. `dst` and `src` are
    the corresponding offsets into `BlockDiagonal.data` for the valid entries.
    """

    block_sizes: tuple[int, ...]
    br: np.ndarray
    bc: np.ndarray
    ir: np.ndarray
    jr: np.ndarray
    ic: np.ndarray
    jc: np.ndarray
    valid: np.ndarray
    dst: np.ndarray
    src: np.ndarray
    rows: np.ndarray
    indptr: np.ndarray | None = None

    @property
    def nnz(self) -> int:
        return self.br.size


def _locate(i, j, sizes):
    """Block (or -1) and local coordinates of matrix elements ``(i, j)``."""
    ends = np.cumsum(sizes)
    starts = ends - np.asarray(sizes)
    bi = np.searchsorted(ends, i, side="right")
    bj = np.searchsorted(ends, j, side="right")
    block = np.where(bi == bj, bi, -1)
    safe = np.where(block >= 0, block, 0)
    li = np.where(block >= 0, i - starts[safe], 0)
    lj = np.where(block >= 0, j - starts[safe], 0)
    return block, li, lj


def _compute_indices(rows, cols, sizes, indptr=None) -> SuperoperatorIndices:
    N = sum(sizes)
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    br, ir, jr = _locate(rows % N, rows // N, sizes)
    bc, ic, jc = _locate(cols % N, cols // N, sizes)
    valid = (br >= 0) & (bc >= 0)

    offsets = np.concatenate(([0], np.cumsum([s * s for s in sizes])))
    width = np.asarray(sizes)
    dst = offsets[br[valid]] + ir[valid] * width[br[valid]] + jr[valid]
    src = offsets[bc[valid]] + ic[valid] * width[bc[valid]] + jc[valid]
    return SuperoperatorIndices(
        block_sizes=tuple(sizes),
        br=br,
        bc=bc,
        ir=ir,
        jr=jr,
        ic=ic,
        jc=jc,
        valid=valid,
        dst=dst,
        src=src,
        rows=rows,
        indptr=indptr,
    )


def _canonical_csc(superop) -> sp.sparse.csc_matrix:
    S = sp.sparse.csc_matrix(superop)
    if not S.has_canonical_format:
        S = S.copy()
        S.sum_duplicates()
    return S


def _csc_coordinates(S: sp.sparse.csc_matrix):
    cols = np.repeat(np.arange(S.shape[1]), np.diff(S.indptr))
    return S.indices.astype(np.int64), cols


def _check_superoperator_shape(shape, sizes):
    dim = sum(sizes)
    if shape != (dim**2, dim**2):
        raise DimensionError(
            f"Superoperator of shape {shape} does not act on blocks {sizes} "
            f"(expected ({dim**2}, {dim**2}))."
        )


def superoperator_indices(superop, block_sizes) -> SuperoperatorIndices:
    """Compute the indices for applying ``superop`` to block-diagonal matrices.

    The indices follow the canonical CSC storage order of ``superop`` and
    stay valid only while its sparsity pattern does not change.

    Args:
        superop: Sparse ``(N**2, N**2)`` superoperator.
        block_sizes: Sizes of the diagonal blocks, ``sum(block_sizes) == N``.

    Returns:
        SuperoperatorIndices: Coordinates of each stored entry.

    Raises:
        DimensionError: The superoperator does not match the block structure.
    """
    sizes = _check_block_sizes(block_sizes)
    S = _canonical_csc(superop)
    _check_superoperator_shape(S.shape, sizes)
    rows, cols = _csc_coordinates(S)
    return _compute_indices(rows, cols, sizes, indptr=S.indptr.copy())


def _check_operands(target: BlockDiagonal, source: BlockDiagonal, sizes):
    if target.block_sizes != sizes or source.block_sizes != sizes:
        raise DimensionError(
            f"Operands with blocks {target.block_sizes} and {source.block_sizes} "
            f"do not match {sizes}."
        )
    if np.shares_memory(target.data, source.data):
        raise InvalidArgumentError("target and source must not share memory.")


def _scatter(target: BlockDiagonal, values, source: BlockDiagonal, indices):
    contrib = values[indices.valid] * source.data[indices.src]
    n = target.data.size
    target.data[:] = np.bincount(indices.dst, weights=contrib.real, minlength=n)
    target.data += 1j * np.bincount(indices.dst, weights=contrib.imag, minlength=n)
    return target


def apply_superoperator(
    target: BlockDiagonal,
    superop,
    source: BlockDiagonal,
    indices: SuperoperatorIndices | None = None,
) -> BlockDiagonal:
    """Apply a Liouville-space superoperator to a block-diagonal matrix.

    ``target`` is overwritten with the block-diagonal part of
    ``superop(source)``. Without ``indices`` they are computed on every call.
    Given ``indices`` must come from `superoperator_indices` for a matrix with
    the same sparsity pattern; a changed pattern raises `DimensionError`.

    Raises:
        DimensionError: Shapes or patterns do not match.
        InvalidArgumentError: ``target`` and ``source`` alias.
    """
    sizes = source.block_sizes
    S = _canonical_csc(superop)
    _check_superoperator_shape(S.shape, sizes)
    _check_operands(target, source, sizes)
    if indices is None:
        indices = superoperator_indices(S, sizes)
    elif (
        indices.block_sizes != sizes
        or indices.nnz != S.nnz
        or (indices.indptr is not None and not np.array_equal(indices.indptr, S.indptr))
        or not np.array_equal(indices.rows, S.indices)
    ):
        raise DimensionError("Sparsity pattern of the superoperator has changed.")
    return _scatter(target, S.data, source, indices)


class PatternStableSuperoperator:
    """Superoperator whose nonzero coordinates never change.

    The coordinates are fixed at construction and the block indices are
    computed once. Values can be replaced with `update` (or
    `update_pre_post` for superoperators built by `pre_post`), as long as
    their number is unchanged.

    Args:
        rows: Row coordinate of each entry.
        cols: Column coordinate of each entry.
        block_sizes: Sizes of the diagonal blocks.
        values: Initial values (zeros if omitted).
    """

    def __init__(self, rows, cols, block_sizes, values=None):
        sizes = _check_block_sizes(block_sizes)
        dim = sum(sizes) ** 2
        rows = np.array(rows, dtype=np.int64).ravel()
        cols = np.array(cols, dtype=np.int64).ravel()
        if rows.shape != cols.shape:
            raise DimensionError("rows and cols must have the same length.")
        if rows.size and (min(rows.min(), cols.min()) < 0 or max(rows.max(), cols.max()) >= dim):
            raise DimensionError(f"Coordinates out of bounds for blocks {sizes}.")
        rows.setflags(write=False)
        cols.setflags(write=False)
        self.block_sizes = sizes
        self.shape = (dim, dim)
        self.rows = rows
        self.cols = cols
        self.indices = _compute_indices(rows, cols, sizes)
        self.values = np.zeros(rows.size, dtype=complex)
        self._factors = None
        if values is not None:
            self.update(values)

    @classmethod
    def from_sparse(cls, superop, block_sizes) -> "PatternStableSuperoperator":
        """Freeze the current pattern and values of a sparse superoperator."""
        sizes = _check_block_sizes(block_sizes)
        S = _canonical_csc(superop)
        _check_superoperator_shape(S.shape, sizes)
        rows, cols = _csc_coordinates(S)
        return cls(rows, cols, sizes, S.data)

    @classmethod
    def pre_post(cls, A, B, block_sizes) -> "PatternStableSuperoperator":
        """Superoperator :math:`\\rho \\mapsto A\\rho B^{\\dagger}` on fixed operator patterns.

        The coordinates are those of :math:`B^{\\ast} \\otimes A` for the
        stored entries of ``A`` and ``B`` (canonical CSC order). Later values
        must be given in the same order via `update_pre_post`.
        """
        A = _canonical_csc(A)
        B = _canonical_csc(B)
        d = sum(_check_block_sizes(block_sizes))
        if A.shape != (d, d) or B.shape != (d, d):
            raise DimensionError(f"Operators must be ({d}, {d}), got {A.shape} and {B.shape}.")
        ra, ca = _csc_coordinates(A)
        rb, cb = _csc_coordinates(B)
        rows = (rb[:, None] * d + ra[None, :]).ravel()
        cols = (cb[:, None] * d + ca[None, :]).ravel()
        obj = cls(rows, cols, block_sizes)
        obj._factors = (A.nnz, B.nnz)
        obj.update_pre_post(A.data, B.data)
        return obj

    @property
    def nnz(self) -> int:
        return self.values.size

    def copy(self) -> "PatternStableSuperoperator":
        """Copy with its own values; pattern and indices are shared."""
        obj = object.__new__(type(self))
        obj.__dict__.update(self.__dict__)
        obj.values = self.values.copy()
        return obj

    def update(self, values):
        values = np.asarray(values).ravel()
        if values.shape != self.values.shape:
            raise DimensionError(
                f"Expected {self.values.size} values, got {values.size}; "
                "the sparsity pattern of a PatternStableSuperoperator cannot change."
            )
        self.values[:] = values
        return self

    def update_pre_post(self, a_values, b_values):
        """Set the values of :math:`B^{\\ast} \\otimes A` from the stored entries of ``A`` and ``B``."""
        a_values = np.asarray(a_values).ravel()
        b_values = np.asarray(b_values).ravel()
        if self._factors is None or (a_values.size, b_values.size) != self._factors:
            raise DimensionError("Operator values do not match the frozen pre/post pattern.")
        self.values[:] = np.outer(np.conj(b_values), a_values).ravel()
        return self

    def apply(self, target: BlockDiagonal, source: BlockDiagonal) -> BlockDiagonal:
        """``target ← self(source)``, restricted to the diagonal blocks."""
        _check_operands(target, source, self.block_sizes)
        return _scatter(target, self.values, source, self.indices)

    def to_sparse(self) -> sp.sparse.csc_matrix:
        return sp.sparse.coo_matrix(
            (self.values.copy(), (self.rows, self.cols)), shape=self.shape
        ).tocsc()

    def __repr__(self) -> str:
        return (
            f"PatternStableSuperoperator(shape={self.shape}, nnz={self.nnz}, "
            f"block_sizes={self.block_sizes})"
        )
