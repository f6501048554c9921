"""Performance benchmarking suite for the pool engine."""

import time
from statistics import mean, stdev

import pytest

from conftest import DENOMINATION, DEPOSITOR, POOL_ADDRESS, DigestVerifier, build_withdrawal
from privacy_pool.core.commitment import Commitment
from privacy_pool.core.merkle_tree import MerkleTree
from privacy_pool.core.pool import PrivacyPool
from privacy_pool.core.transfer import Bank
from privacy_pool.core.withdrawal import WithdrawRequest
from privacy_pool.crypto.poseidon import poseidon
from privacy_pool.utils.encoding import NATIVE_ASSET


class PerformanceBenchmark:
    """Benchmarking harness for pool operations."""

    def __init__(self, name: str, iterations: int = 10):
        self.name = name
        self.iterations = iterations
        self.times = []

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.times.append(time.perf_counter() - self.start)

    def report(self):
        """Print benchmark results."""
        avg = mean(self.times)
        std_dev = stdev(self.times) if len(self.times) > 1 else 0

        print(f"\n{'='*70}")
        print(f"Benchmark: {self.name}")
        print(f"{'='*70}")
        print(f"Iterations:     {len(self.times)}")
        print(f"Average Time:   {avg*1000:.2f} ms")
        print(f"Min Time:       {min(self.times)*1000:.2f} ms")
        print(f"Max Time:       {max(self.times)*1000:.2f} ms")
        print(f"Std Dev:        {std_dev*1000:.2f} ms")
        print(f"Throughput:     {1/avg:.2f} ops/sec")

        return {
            "name": self.name,
            "iterations": len(self.times),
            "avg_ms": avg * 1000,
            "std_dev_ms": std_dev * 1000,
        }


@pytest.fixture
def large_pool():
    bank = Bank()
    bank.mint(NATIVE_ASSET, DEPOSITOR, 1000 * DENOMINATION)
    return PrivacyPool.with_bank(bank, NATIVE_ASSET, DENOMINATION, DigestVerifier(), POOL_ADDRESS)


@pytest.mark.benchmark
class TestPerformanceBenchmarks:
    """Performance benchmarks for core operations at the default tree depth."""

    def test_poseidon(self):
        benchmark = PerformanceBenchmark("Poseidon (2 inputs)", iterations=100)
        for i in range(benchmark.iterations):
            with benchmark:
                poseidon(i, i + 1)
        assert benchmark.report()["avg_ms"] < 50

    def test_tree_insertion(self):
        """Benchmark appends to a depth-20 tree (20 hashes each)."""
        tree = MerkleTree()
        benchmark = PerformanceBenchmark("Merkle Tree Insertion", iterations=20)
        for i in range(benchmark.iterations):
            with benchmark:
                tree.insert(i)
        assert benchmark.report()["avg_ms"] < 1000

    def test_path_generation(self):
        tree = MerkleTree.from_leaves(range(20))
        benchmark = PerformanceBenchmark("Merkle Path Generation", iterations=20)
        for index in range(benchmark.iterations):
            with benchmark:
                tree.path_of(index)
        assert benchmark.report()["avg_ms"] < 5

    def test_deposit(self, large_pool):
        benchmark = PerformanceBenchmark("Deposit", iterations=10)
        for i in range(benchmark.iterations):
            raw = Commitment.compute_raw_commitment(i + 1)
            with benchmark:
                large_pool.deposit(DEPOSITOR, raw, value=DENOMINATION)
        assert benchmark.report()["avg_ms"] < 1000

    def test_withdrawal(self, large_pool):
        """Benchmark withdrawals without proof cost (digest verifier)."""
        notes = [Commitment.create_note(NATIVE_ASSET, DENOMINATION, secret=s) for s in range(1, 6)]
        large_pool.deposit_many(DEPOSITOR, [n.raw_commitment for n in notes], value=5 * DENOMINATION)
        relayer = "0x" + "c3" * 20

        benchmark = PerformanceBenchmark("Withdrawal", iterations=len(notes))
        for index, note in enumerate(notes):
            proof = build_withdrawal(large_pool, note, index, bit_length=20)
            with benchmark:
                large_pool.withdraw(relayer, WithdrawRequest(proof, relayer))
        assert benchmark.report()["avg_ms"] < 500
