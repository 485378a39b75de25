#! /usr/bin/env python

import doctest
import unittest

import numpy as np
import scipy as sp

from fisherpy import blockdiag
from fisherpy.blockdiag import (
    BlockDiagonal,
    PatternStableSuperoperator,
    apply_superoperator,
    superoperator_indices,
)
from fisherpy.errors import DimensionError, InvalidArgumentError
from fisherpy.operators import sup_pre_post

BLOCK_STRUCTURES = [(1, 1), (2, 1, 3), (3, 2, 1, 1), (2, 2, 2, 2)]


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(blockdiag))
    return tests


def random_block_diagonal(rng, sizes):
    blocks = [rng.normal(size=(s, s)) + 1j * rng.normal(size=(s, s)) for s in sizes]
    return BlockDiagonal.from_matrix(sp.linalg.block_diag(*blocks), sizes)


def random_superoperator(rng, sizes, density=0.3):
    n = sum(sizes) ** 2
    S = sp.sparse.random(n, n, density=density, random_state=rng, format="csc")
    S.sum_duplicates()
    S.data = S.data + 1j * rng.normal(size=S.nnz)
    return S


def random_operator(rng, dim, density=0.5):
    A = sp.sparse.random(dim, dim, density=density, random_state=rng, format="csc")
    A.sum_duplicates()
    A.data = A.data + 1j * rng.normal(size=A.nnz)
    return A


def naive_apply(S, source, sizes):
    """Full Liouville product restricted to the diagonal blocks."""
    return BlockDiagonal.from_vector(S @ source.to_vector(), sizes)


class BlockDiagonalTestCase(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(0)

    def test_round_trip(self):
        M = sp.linalg.block_diag(np.ones((2, 2)), 2 * np.ones((1, 1)), np.eye(3))
        B = BlockDiagonal.from_matrix(M, (2, 1, 3))
        self.assertEqual(B.shape, (6, 6))
        self.assertEqual(B.dim, 6)
        np.testing.assert_array_equal(B.to_dense(), M)

    def test_off_diagonal_blocks_dropped(self):
        M = np.ones((3, 3))
        B = BlockDiagonal.from_matrix(M, (2, 1))
        np.testing.assert_array_equal(
            B.to_dense(), sp.linalg.block_diag(np.ones((2, 2)), np.ones((1, 1)))
        )

    def test_sparse_input(self):
        M = sp.sparse.identity(4, format="csr")
        B = BlockDiagonal.from_matrix(M, (3, 1))
        np.testing.assert_array_equal(B.to_dense(), np.eye(4))

    def test_blocks_are_views(self):
        B = BlockDiagonal((2, 3))
        self.assertEqual(B.data.size, 13)
        B.data[:] = 1
        self.assertTrue(all(np.all(b == 1) for b in B.blocks))
        B.blocks[1][2, 2] = 5
        self.assertEqual(B.data[-1], 5)

    def test_trace(self):
        B = random_block_diagonal(self.rng, (2, 1, 3))
        self.assertAlmostEqual(B.trace(), np.trace(B.to_dense()))

    def test_copy(self):
        B = random_block_diagonal(self.rng, (2, 2))
        C = B.copy()
        C.fill(0)
        self.assertFalse(np.shares_memory(B.data, C.data))
        self.assertNotEqual(np.abs(B.data).sum(), 0)

    def test_arithmetic(self):
        A = random_block_diagonal(self.rng, (2, 1))
        B = random_block_diagonal(self.rng, (2, 1))
        expected = 2 * A.to_dense() - 3 * B.to_dense()
        A.scale(2).axpy(-3, B)
        np.testing.assert_allclose(A.to_dense(), expected)

    def test_axpy_mismatch(self):
        with self.assertRaises(DimensionError):
            BlockDiagonal((2, 1)).axpy(1, BlockDiagonal((1, 2)))

    def test_chop(self):
        B = BlockDiagonal((1, 1))
        B.data[:] = [1e-16 + 1j, 1.0]
        B.chop(1e-14)
        np.testing.assert_array_equal(B.data, [1j, 1.0])

    def test_vector_round_trip(self):
        B = random_block_diagonal(self.rng, (3, 1))
        C = BlockDiagonal.from_vector(B.to_vector(), (3, 1))
        np.testing.assert_array_equal(B.data, C.data)

    def test_invalid(self):
        with self.assertRaises(InvalidArgumentError):
            BlockDiagonal(())
        with self.assertRaises(InvalidArgumentError):
            BlockDiagonal((2, 0))
        with self.assertRaises(DimensionError):
            BlockDiagonal.from_matrix(np.eye(3), (2, 2))
        with self.assertRaises(DimensionError):
            BlockDiagonal((2,), data=np.zeros(5))


class SuperoperatorIndicesTestCase(unittest.TestCase):
    def test_identity(self):
        indices = superoperator_indices(sp.sparse.identity(4, format="csc"), (1, 1))
        np.testing.assert_array_equal(indices.br, [0, -1, -1, 1])
        np.testing.assert_array_equal(indices.bc, [0, -1, -1, 1])
        np.testing.assert_array_equal(indices.valid, [True, False, False, True])
        self.assertEqual(indices.nnz, 4)

    def test_local_coordinates(self):
        # (row, col) = (8, 4): element (2, 2) from element (1, 1) for N = 3
        S = sp.sparse.csc_matrix(([1.0], ([8], [4])), shape=(9, 9))
        indices = superoperator_indices(S, (1, 2))
        self.assertEqual(indices.br[0], 1)
        self.assertEqual((indices.ir[0], indices.jr[0]), (1, 1))
        self.assertEqual(indices.bc[0], 1)
        self.assertEqual((indices.ic[0], indices.jc[0]), (0, 0))

    def test_mixed_blocks_invalid(self):
        # destination (0, 1) mixes the blocks of (1, 1)
        S = sp.sparse.csc_matrix(([1.0], ([2], [0])), shape=(4, 4))
        indices = superoperator_indices(S, (1, 1))
        self.assertEqual(indices.br[0], -1)
        self.assertEqual(indices.bc[0], 0)
        self.assertFalse(indices.valid[0])

    def test_dimension_mismatch(self):
        with self.assertRaises(DimensionError):
            superoperator_indices(sp.sparse.identity(9, format="csc"), (1, 1))


class ApplySuperoperatorTestCase(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(1)

    def test_matches_full_product(self):
        for sizes in BLOCK_STRUCTURES:
            S = random_superoperator(self.rng, sizes)
            source = random_block_diagonal(self.rng, sizes)
            target = BlockDiagonal(sizes)
            with self.subTest(sizes=sizes):
                apply_superoperator(target, S, source)
                np.testing.assert_allclose(
                    target.data, naive_apply(S, source, sizes).data, atol=1e-10
                )

    def test_indexed_path_agrees(self):
        for sizes in BLOCK_STRUCTURES:
            S = random_superoperator(self.rng, sizes)
            source = random_block_diagonal(self.rng, sizes)
            slow = apply_superoperator(BlockDiagonal(sizes), S, source)
            indices = superoperator_indices(S, sizes)
            fast = apply_superoperator(BlockDiagonal(sizes), S, source, indices)
            with self.subTest(sizes=sizes):
                np.testing.assert_allclose(fast.data, slow.data, atol=1e-10)

    def test_target_is_overwritten(self):
        sizes = (2, 1)
        S = random_superoperator(self.rng, sizes)
        source = random_block_diagonal(self.rng, sizes)
        target = random_block_diagonal(self.rng, sizes)
        apply_superoperator(target, S, source)
        np.testing.assert_allclose(
            target.data, naive_apply(S, source, sizes).data, atol=1e-10
        )

    def test_pre_post_superoperator(self):
        sizes = (3, 1)
        A = sp.linalg.block_diag(self.rng.normal(size=(3, 3)), [[2.0]])
        rho = random_block_diagonal(self.rng, sizes)
        target = apply_superoperator(BlockDiagonal(sizes), sup_pre_post(A), rho)
        expected = A @ rho.to_dense() @ A.conj().T
        np.testing.assert_allclose(target.to_dense(), expected, atol=1e-10)

    def test_aliasing(self):
        sizes = (2, 1)
        S = random_superoperator(self.rng, sizes)
        B = random_block_diagonal(self.rng, sizes)
        with self.assertRaises(InvalidArgumentError):
            apply_superoperator(B, S, B)
        view = BlockDiagonal(sizes, data=B.data)
        with self.assertRaises(InvalidArgumentError):
            apply_superoperator(view, S, B)

    def test_dimension_mismatch(self):
        S = random_superoperator(self.rng, (2, 2))
        with self.assertRaises(DimensionError):
            apply_superoperator(BlockDiagonal((2, 1)), S, BlockDiagonal((2, 1)))
        with self.assertRaises(DimensionError):
            apply_superoperator(BlockDiagonal((2, 2)), S, BlockDiagonal((3, 1)))

    def test_changed_pattern(self):
        sizes = (2, 1)
        S1 = random_superoperator(self.rng, sizes)
        S2 = random_superoperator(self.rng, sizes, density=0.6)
        indices = superoperator_indices(S1, sizes)
        source = random_block_diagonal(self.rng, sizes)
        with self.assertRaises(DimensionError):
            apply_superoperator(BlockDiagonal(sizes), S2, source, indices)

    def test_same_pattern_new_values(self):
        sizes = (2, 1)
        S = random_superoperator(self.rng, sizes)
        indices = superoperator_indices(S, sizes)
        S2 = S.copy()
        S2.data = 2 * S2.data
        source = random_block_diagonal(self.rng, sizes)
        fast = apply_superoperator(BlockDiagonal(sizes), S2, source, indices)
        np.testing.assert_allclose(
            fast.data, naive_apply(S2, source, sizes).data, atol=1e-10
        )


class PatternStableSuperoperatorTestCase(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(2)

    def test_from_sparse(self):
        for sizes in BLOCK_STRUCTURES:
            S = random_superoperator(self.rng, sizes)
            P = PatternStableSuperoperator.from_sparse(S, sizes)
            source = random_block_diagonal(self.rng, sizes)
            with self.subTest(sizes=sizes):
                self.assertEqual(P.nnz, S.nnz)
                np.testing.assert_allclose(P.to_sparse().toarray(), S.toarray())
                np.testing.assert_allclose(
                    P.apply(BlockDiagonal(sizes), source).data,
                    apply_superoperator(BlockDiagonal(sizes), S, source).data,
                    atol=1e-10,
                )

    def test_update(self):
        sizes = (2, 2)
        S = random_superoperator(self.rng, sizes)
        P = PatternStableSuperoperator.from_sparse(S, sizes)
        P.update(3 * sp.sparse.csc_matrix(S).data)
        np.testing.assert_allclose(P.to_sparse().toarray(), 3 * S.toarray())

    def test_update_rejects_pattern_change(self):
        sizes = (2, 2)
        P = PatternStableSuperoperator.from_sparse(random_superoperator(self.rng, sizes), sizes)
        with self.assertRaises(DimensionError):
            P.update(np.ones(P.nnz + 1))
        with self.assertRaises(DimensionError):
            P.update_pre_post(np.ones(2), np.ones(2))

    def test_pre_post(self):
        sizes = (2, 1, 1)
        A = random_operator(self.rng, 4)
        B = random_operator(self.rng, 4)
        P = PatternStableSuperoperator.pre_post(A, B, sizes)
        np.testing.assert_allclose(P.to_sparse().toarray(), sup_pre_post(A, B).toarray())
        self.assertEqual(P.nnz, A.nnz * B.nnz)

    def test_update_pre_post(self):
        sizes = (3, 1)
        A = random_operator(self.rng, 4)
        P = PatternStableSuperoperator.pre_post(A, A, sizes)
        A2 = A.copy()
        A2.data = self.rng.normal(size=A.nnz) + 1j * self.rng.normal(size=A.nnz)
        P.update_pre_post(A2.data, A2.data)
        np.testing.assert_allclose(P.to_sparse().toarray(), sup_pre_post(A2).toarray())
        with self.assertRaises(DimensionError):
            P.update_pre_post(A2.data[:-1], A2.data)

    def test_apply_pre_post(self):
        sizes = (3, 1)
        A = sp.sparse.csc_matrix(
            sp.linalg.block_diag(self.rng.normal(size=(3, 3)), [[1.5]])
        )
        P = PatternStableSuperoperator.pre_post(A, A, sizes)
        rho = random_block_diagonal(self.rng, sizes)
        out = P.apply(BlockDiagonal(sizes), rho)
        np.testing.assert_allclose(
            out.to_dense(), A @ rho.to_dense() @ A.conj().T.toarray(), atol=1e-10
        )

    def test_copy_has_own_values(self):
        sizes = (1, 1)
        P = PatternStableSuperoperator.from_sparse(sp.sparse.identity(4, format="csc"), sizes)
        Q = P.copy()
        Q.update(2 * np.ones(Q.nnz))
        np.testing.assert_array_equal(P.values, np.ones(4))
        self.assertIs(P.indices, Q.indices)

    def test_coordinates_are_frozen(self):
        P = PatternStableSuperoperator([0, 3], [0, 3], (1, 1))
        with self.assertRaises(ValueError):
            P.rows[0] = 1

    def test_out_of_bounds(self):
        with self.assertRaises(DimensionError):
            PatternStableSuperoperator([4], [0], (1, 1))
