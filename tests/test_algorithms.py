"""
Tests for the build pipeline's collaborators.

Tests cover:
- Alphabet digitization and guessing
- Alignment validation and checksum
- Relative weighting algorithms
- Consensus column assignment, traces and counting
- Priors and parameter estimation
- Entropy weighting
"""

import numpy as np
import pytest

from plan7.core import (
    Alphabet, AlphabetType, Alignment, Background, Plan7Model, TraceState, guess_alphabet,
    create_prior, ConvergenceError, EstimationError, FormatError, NoConsensusError, BuildError,
    AllocationError, ErrorKind
)
from plan7.core.alphabet import GAP_CODE, DEGENERATE_CODE
from plan7.core.entropy import entropy_weight, mean_match_relative_entropy, relative_entropy
from plan7.core.errors import MAX_MESSAGE_LENGTH
from plan7.core.hmm import TMM, TMI, TMD, TIM, TII, TDM, TDD
from plan7.core.modelmaker import fast_model, hand_model, count_trace
from plan7.core.parameterize import parameter_estimation
from plan7.core.prior import DirichletMixture
from plan7.core.weighting import (
    pairwise_identity, weight_position_based, weight_gsc, weight_blosum, single_linkage_clusters
)


class TestErrors:

    @pytest.mark.unit
    def test_message_bounded(self):
        err = EstimationError("x" * 5000)
        assert len(err.message) == MAX_MESSAGE_LENGTH

    @pytest.mark.unit
    def test_relabel_keeps_kind(self):
        err = NoConsensusError("no consensus columns").relabel("new message")
        assert isinstance(err, NoConsensusError)
        assert err.kind == ErrorKind.NO_RESULT
        assert str(err) == "new message"

    @pytest.mark.unit
    def test_allocation_default(self):
        assert str(AllocationError()) == "memory allocation failed"
        assert issubclass(AllocationError, BuildError)


class TestAlphabet:

    @pytest.mark.unit
    def test_digitize(self, amino):
        dsq = amino.digitize("AC-x.")
        assert list(dsq) == [0, 1, GAP_CODE, DEGENERATE_CODE, GAP_CODE]

    @pytest.mark.unit
    def test_illegal_character(self, dna):
        with pytest.raises(ValueError):
            dna.digitize("AC1")

    @pytest.mark.unit
    def test_guess(self):
        assert guess_alphabet(["ACGT-ACG"]).type == AlphabetType.DNA
        assert guess_alphabet(["ACGU"]).type == AlphabetType.RNA
        assert guess_alphabet(["MVLSPADK"]).type == AlphabetType.AMINO
        assert guess_alphabet(["----"]) is None

    @pytest.mark.unit
    def test_from_name(self):
        assert Alphabet.from_name("protein") == Alphabet.amino()
        with pytest.raises(ValueError):
            Alphabet.from_name("klingon")


class TestAlignment:

    @pytest.mark.unit
    def test_ragged_rows_rejected(self, amino):
        with pytest.raises(ValueError):
            Alignment(names=["a", "b"], aseqs=["ACD", "AC"], abc=amino)

    @pytest.mark.unit
    def test_unknown_cutoff_rejected(self, amino):
        with pytest.raises(ValueError):
            Alignment(names=["a"], aseqs=["ACD"], abc=amino, cutoffs={"XX1": 1.0})

    @pytest.mark.unit
    def test_default_weights(self, protein_msa):
        np.testing.assert_array_equal(protein_msa.weights, np.ones(10))

    @pytest.mark.unit
    def test_checksum_stable_and_sensitive(self, protein_msa, amino):
        same = Alignment(names=list(protein_msa.names), aseqs=list(protein_msa.aseqs), abc=amino)
        assert protein_msa.checksum() == same.checksum()
        changed = list(protein_msa.aseqs)
        changed[0] = "A" + changed[0][1:]
        other = Alignment(names=list(protein_msa.names), aseqs=changed, abc=amino)
        assert other.checksum() != protein_msa.checksum()
        assert 0 <= protein_msa.checksum() < 2 ** 32


class TestWeighting:

    @pytest.mark.unit
    def test_identity_matrix(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["ACGT", "ACGA", "TTTT"], abc=dna)
        pid = pairwise_identity(msa)
        np.testing.assert_allclose(np.diag(pid), 1.0)
        assert pid[0, 1] == pytest.approx(0.75)
        assert pid[0, 2] == pytest.approx(0.25)

    @pytest.mark.unit
    def test_duplicates_share_weight(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["ACGTAC", "ACGTAC", "TGCATG"], abc=dna)
        weight_position_based(msa)
        assert msa.weights[0] == pytest.approx(msa.weights[1])
        assert msa.weights[2] > msa.weights[0]
        assert msa.weights.sum() == pytest.approx(3.0)

    @pytest.mark.unit
    def test_gsc_downweights_redundant(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["ACGTACGT", "ACGTACGA", "TGCATGCA"], abc=dna)
        weight_gsc(msa)
        assert msa.weights[2] > msa.weights[0]
        assert msa.weights.sum() == pytest.approx(3.0)

    @pytest.mark.unit
    def test_blosum_cluster_weights(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["ACGTACGT", "ACGTACGA", "TGCATGCA"], abc=dna)
        weight_blosum(msa, maxid=0.62)
        # {a, b} cluster gets 1/2 each, c alone gets 1, rescaled to sum to 3
        assert msa.weights[0] == pytest.approx(0.75)
        assert msa.weights[2] == pytest.approx(1.5)

    @pytest.mark.unit
    def test_single_linkage_clusters(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["ACGTACGT", "ACGTACGA", "TGCATGCA"], abc=dna)
        assert single_linkage_clusters(msa, 0.62) == 2
        assert single_linkage_clusters(msa, 0.95) == 3

    @pytest.mark.unit
    def test_empty_alignment(self, dna):
        msa = Alignment(names=[], aseqs=[], abc=dna)
        with pytest.raises(EstimationError):
            weight_gsc(msa)


class TestModelConstruction:

    @pytest.mark.unit
    def test_fast_model_counts(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["AC-T", "ACGT", "AC-T"], abc=dna)
        hmm, traces = fast_model(msa, 0.5, want_traces=True)
        # column 3 is 1/3 residues: an insert column
        assert hmm.M == 3
        assert hmm.mat[1, 0] == 3.0
        assert hmm.ins[2, 2] == 1.0
        assert hmm.t[2, TMI] == 1.0
        assert hmm.t[2, TMM] == 2.0
        assert hmm.t[2, TIM] == 1.0
        assert hmm.nseq == 3 and hmm.eff_nseq == 3.0
        assert len(traces) == 3

    @pytest.mark.unit
    def test_trace_structure(self, dna):
        msa = Alignment(names=["a", "b"], aseqs=["gAC-T", "-ACGT"], abc=dna)
        msa.aseqs = [s.upper() for s in msa.aseqs]
        _, traces = fast_model(msa, 0.6, want_traces=True)
        states = [s for s, _, _ in traces[0].steps()]
        assert states[0] == TraceState.S and states[-1] == TraceState.T
        assert TraceState.N in states and TraceState.B in states
        assert traces[0].L == 4
        assert traces[1].L == 4

    @pytest.mark.unit
    def test_delete_counts(self, dna):
        msa = Alignment(names=["a", "b", "c"], aseqs=["ACGT", "A--T", "ACGT"], abc=dna)
        hmm, _ = fast_model(msa, 0.5)
        assert hmm.M == 4
        assert hmm.t[1, TMD] == 1.0
        assert hmm.t[2, TDD] == 1.0
        assert hmm.t[3, TDM] == 1.0

    @pytest.mark.unit
    def test_weights_scale_counts(self, dna):
        msa = Alignment(names=["a", "b"], aseqs=["AC", "GT"], abc=dna, weights=[2.0, 0.5])
        hmm, _ = fast_model(msa, 0.5)
        assert hmm.mat[1, 0] == 2.0
        assert hmm.mat[1, 2] == 0.5

    @pytest.mark.unit
    def test_degenerate_residue_spread(self, dna):
        msa = Alignment(names=["a"], aseqs=["AN"], abc=dna)
        hmm, _ = fast_model(msa, 0.5)
        np.testing.assert_allclose(hmm.mat[2], 0.25)

    @pytest.mark.unit
    def test_no_consensus(self, sparse_msa):
        with pytest.raises(NoConsensusError):
            fast_model(sparse_msa, 0.5)

    @pytest.mark.unit
    def test_hand_requires_rf(self, protein_msa):
        with pytest.raises(FormatError):
            hand_model(protein_msa)


class TestParameterization:

    @pytest.mark.unit
    def test_posterior_mean_no_counts_is_prior_mean(self):
        mix = DirichletMixture([1.0], [[1.0, 3.0]])
        np.testing.assert_allclose(mix.posterior_mean([0.0, 0.0]), [0.25, 0.75])

    @pytest.mark.unit
    def test_posterior_mean_follows_counts(self):
        mix = DirichletMixture([1.0], [[1.0, 1.0]])
        np.testing.assert_allclose(mix.posterior_mean([8.0, 0.0]), [0.9, 0.1])

    @pytest.mark.unit
    def test_estimation_normalizes(self, protein_msa, amino):
        hmm, _ = fast_model(protein_msa, 0.5)
        parameter_estimation(hmm, create_prior(amino))
        assert hmm.parameterized
        hmm.validate()
        M = hmm.M
        assert hmm.t[0, TDM] == 1.0 and hmm.t[0, TDD] == 0.0
        assert hmm.t[M, TMM] == 1.0 and hmm.t[M, TMI] == 0.0 and hmm.t[M, TMD] == 0.0
        assert hmm.t[M, TIM] == 1.0 and hmm.t[M, TII] == 0.0

    @pytest.mark.unit
    def test_estimation_twice_fails(self, protein_msa, amino):
        hmm, _ = fast_model(protein_msa, 0.5)
        parameter_estimation(hmm, create_prior(amino))
        with pytest.raises(EstimationError):
            parameter_estimation(hmm, create_prior(amino))

    @pytest.mark.unit
    def test_prior_alphabet_mismatch(self, protein_msa, dna):
        hmm, _ = fast_model(protein_msa, 0.5)
        with pytest.raises(EstimationError):
            parameter_estimation(hmm, create_prior(dna))


class TestEntropyWeighting:

    @pytest.mark.unit
    def test_relative_entropy(self):
        f = np.full(4, 0.25)
        assert relative_entropy(f, f) == pytest.approx(0.0)
        assert relative_entropy(np.array([1.0, 0, 0, 0]), f) == pytest.approx(2.0)

    @pytest.mark.unit
    def test_hits_target(self, protein_msa, amino, amino_bg):
        prior = create_prior(amino)
        hmm, _ = fast_model(protein_msa, 0.5)
        eff = entropy_weight(hmm, amino_bg, prior, etarget=1.0)
        assert 0.0 < eff < 10.0

        hmm.scale_counts(eff)
        parameter_estimation(hmm, prior)
        assert mean_match_relative_entropy(hmm, amino_bg) == pytest.approx(1.0, abs=1e-2)

    @pytest.mark.unit
    def test_already_below_target(self, protein_msa, amino, amino_bg):
        hmm, _ = fast_model(protein_msa, 0.5)
        assert entropy_weight(hmm, amino_bg, create_prior(amino), etarget=50.0) == 10.0

    @pytest.mark.unit
    def test_unreachable_target(self, protein_msa, amino):
        hmm, _ = fast_model(protein_msa, 0.5)
        skewed = Background(amino, f=[0.9] + [0.1 / 19] * 19)
        with pytest.raises(ConvergenceError):
            entropy_weight(hmm, skewed, create_prior(amino), etarget=1e-6)


class TestModelScaling:

    @pytest.mark.unit
    def test_scale_counts_ratio(self, protein_msa):
        hmm, _ = fast_model(protein_msa, 0.5)
        before = hmm.mat.copy()
        factor = hmm.scale_counts(4.0)
        assert factor == pytest.approx(0.4)
        np.testing.assert_allclose(hmm.mat, before * 0.4)
        assert hmm.eff_nseq == 4.0

    @pytest.mark.unit
    def test_scale_parameterized_rejected(self, protein_msa, amino):
        hmm, _ = fast_model(protein_msa, 0.5)
        parameter_estimation(hmm, create_prior(amino))
        with pytest.raises(ValueError):
            hmm.scale_counts(2.0)

    @pytest.mark.unit
    def test_model_needs_nodes(self, amino):
        with pytest.raises(ValueError):
            Plan7Model(amino, 0)
