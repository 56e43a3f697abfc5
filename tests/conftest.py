"""
Pytest configuration for plan7 tests.

Shared fixtures: small protein and DNA alignments, backgrounds, fast
calibration settings and a symmetric nucleotide score matrix file.
"""

import pytest
import os
import sys
import logging
import tempfile
from pathlib import Path

# Add plan7 to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from plan7.config import Plan7Config, CalibrationConfig
from plan7.core import Alphabet, Alignment, Background

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

AMINO = "ACDEFGHIKLMNPQRSTVWY"
PROTEIN_CORE = "MVLSPADKTNVKAAWGKVGAHAGEYGAEAL"


def make_protein_rows(nseq: int = 10):
    """
    Rows of a globin-like alignment: PROTEIN_CORE with two substitutions
    per row, a two-column insertion after column 20 present only in the
    first two rows, a deletion in rows 2 and 5 and a ragged N-terminus
    in row 7.
    """
    rows = []
    for i in range(nseq):
        row = list(PROTEIN_CORE)
        for pos in ((i * 3 + 1) % 30, (i * 7 + 2) % 30):
            sub = AMINO[(i * 5 + pos) % 20]
            if sub == row[pos]:
                sub = AMINO[(i * 5 + pos + 1) % 20]
            row[pos] = sub
        if i in (2, 5):
            row[10:13] = ["-", "-", "-"]
        if i == 7:
            row[0:2] = ["-", "-"]
        insert = ["G", "S"] if i < 2 else ["-", "-"]
        row = row[:20] + insert + row[20:]
        rows.append("".join(row))
    return rows


@pytest.fixture
def amino():
    return Alphabet.amino()


@pytest.fixture
def dna():
    return Alphabet.dna()


@pytest.fixture
def protein_msa(amino):
    """10 x 32 protein alignment with 30 consensus columns."""
    rows = make_protein_rows()
    return Alignment(
        names=[f"seq{i + 1}" for i in range(len(rows))],
        aseqs=rows,
        abc=amino,
        name="globin_frag",
        acc="PF99999.1",
        desc="Globin-like test family",
    )


@pytest.fixture
def dna_msa(dna):
    """6 x 16 DNA alignment."""
    rows = [
        "ACGTACGTTTGACCAA",
        "ACGTACGATTGACCAA",
        "ACGAACGTTTGAC-AA",
        "ACGTACCTTTGACCAT",
        "TCGTACGTTTGACCAA",
        "ACGTAC--TTGACCAA",
    ]
    return Alignment(
        names=[f"dna{i + 1}" for i in range(len(rows))],
        aseqs=rows,
        abc=dna,
        name="dna_family",
    )


@pytest.fixture
def sparse_msa(amino):
    """Every column is mostly gaps: no column reaches symfrac 0.5."""
    return Alignment(
        names=["a", "b", "c"],
        aseqs=["M--", "-K-", "--W"],
        abc=amino,
        name="sparse",
    )


@pytest.fixture
def amino_bg(amino):
    return Background(amino)


@pytest.fixture
def dna_bg(dna):
    return Background(dna)


@pytest.fixture
def fast_config():
    """Default strategies with small calibration simulations and a fixed seed."""
    config = Plan7Config()
    config.calibration = CalibrationConfig(EvL=50, EvN=40, EfL=50, EfN=40, seed=42)
    return config


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def dna_matrix_file(temp_dir):
    """Symmetric +5/-4 nucleotide score matrix."""
    path = temp_dir / "DNA54"
    path.write_text(
        "# +5/-4 nucleotide matrix\n"
        "   A  C  G  T\n"
        "A  5 -4 -4 -4\n"
        "C -4  5 -4 -4\n"
        "G -4 -4  5 -4\n"
        "T -4 -4 -4  5\n"
    )
    return path


@pytest.fixture
def asymmetric_matrix_file(temp_dir):
    path = temp_dir / "ASYM"
    path.write_text(
        "   A  C  G  T\n"
        "A  5 -4 -4 -4\n"
        "C -4  5 -4 -4\n"
        "G -4 -4  5 -4\n"
        "T -3 -4 -4  5\n"
    )
    return path


@pytest.fixture
def stockholm_file(temp_dir):
    """Two-alignment Stockholm file with annotation on the first."""
    rows = make_protein_rows()
    lines = ["# STOCKHOLM 1.0", "#=GF ID globin_frag", "#=GF AC PF99999.1",
             "#=GF DE Globin-like test family", "#=GF GA 25.0 22.5;", "#=GF TC 30.1;", ""]
    for i, row in enumerate(rows):
        lines.append(f"seq{i + 1:<6d} {row}")
    rf = "".join("." if c in (20, 21) else "x" for c in range(len(rows[0])))
    lines.append(f"#=GC RF    {rf}")
    lines.append("//")
    lines.append("# STOCKHOLM 1.0")
    lines.append("#=GF ID second")
    lines.append("")
    for i, row in enumerate(rows[:5]):
        lines.append(f"s{i + 1:<9d} {row}")
    lines.append("//")
    path = temp_dir / "families.sto"
    path.write_text("\n".join(lines) + "\n")
    return path


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
