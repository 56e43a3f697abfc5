"""
Tests for reconstructing alignments from traces.
"""

import pytest

from plan7.core import Alignment, ConfigurationError
from plan7.core.modelmaker import fast_model
from plan7.core.tracealign import trace_alignment


class TestTraceAlignment:

    @pytest.mark.unit
    def test_insert_columns_lowercase(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["AC-T", "ACGT", "AC-T"], abc=dna,
                        name="tiny", cutoffs={"GA1": 1.0, "GA2": 2.0})
        hmm, traces = fast_model(msa, 0.5, want_traces=True)
        post = trace_alignment(msa, traces, hmm.M)
        assert post.aseqs == ["AC.T", "ACgT", "AC.T"]
        assert post.rf == "xx.x"
        assert post.name == "tiny"
        assert post.cutoffs == {"GA1": 1.0, "GA2": 2.0}

    @pytest.mark.unit
    def test_deletes_and_flanks(self, dna):
        msa = Alignment(names=["a", "b"], aseqs=["GAC-T", "-ACGT"], abc=dna)
        hmm, traces = fast_model(msa, 0.6, want_traces=True)
        post = trace_alignment(msa, traces, hmm.M)
        # N flank residue G, match A C, insert G in row b, match T
        assert post.aseqs == ["gAC.T", ".ACgT"]
        assert post.rf == ".xx.x"

    @pytest.mark.unit
    def test_preserves_residues(self, protein_msa):
        hmm, traces = fast_model(protein_msa, 0.5, want_traces=True)
        post = trace_alignment(protein_msa, traces, hmm.M)
        assert post.nseq == protein_msa.nseq
        assert post.rf.count("x") == hmm.M
        for idx in range(protein_msa.nseq):
            assert post.unaligned(idx).upper() == protein_msa.unaligned(idx).upper()

    @pytest.mark.unit
    def test_trace_count_mismatch(self, protein_msa):
        hmm, traces = fast_model(protein_msa, 0.5, want_traces=True)
        with pytest.raises(ConfigurationError):
            trace_alignment(protein_msa, traces[:-1], hmm.M)
