"""
Standardized pipeline for constructing new Plan7 models.

The Builder owns every strategy choice and tunable for a build, plus
the random number generator used by calibration, the prior used by
parameter estimation, and (optionally) a substitution score system for
single-sequence queries. Each build runs the same fixed sequence of
stages:

    relative weighting -> architecture and counts -> effective sequence
    number -> parameterization -> annotation -> calibration -> optional
    post-build alignment

A Builder is stateful and not safe to share between threads; each
worker should construct its own (see parallel_builder).
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from plan7.config import (
    ArchStrategy,
    CalibrationConfig,
    ConstructionConfig,
    EffectiveNumberConfig,
    EffnStrategy,
    Plan7Config,
    WeightingConfig,
    WeightStrategy,
)

from .alphabet import Alphabet, AlphabetType
from .background import Background
from .calibrate import CalibrationResult, calibrate
from .entropy import entropy_weight
from .errors import (
    AllocationError,
    BuildError,
    ConfigurationError,
    EstimationError,
    FormatError,
    NoConsensusError,
)
from .hmm import Cutoff, ModelFlags, Plan7Model
from .modelmaker import fast_model, hand_model
from .msa import Alignment, Sequence
from .parameterize import parameter_estimation
from .prior import create_prior
from .profile import OptimizedProfile, Profile
from .scorematrix import ScoreSystem, load_score_system
from .seqmodel import sequence_model
from .trace import Trace
from .tracealign import trace_alignment
from .weighting import (
    single_linkage_clusters,
    weight_blosum,
    weight_gsc,
    weight_position_based,
)

logger = logging.getLogger(__name__)


# Lower bounds on the default target relative entropy (bits/position)
ETARGET_AMINO = 0.59
ETARGET_NUCLEIC = 0.62
ETARGET_OTHER = 1.0

# (first key, second key, first slot, second slot, flag)
CUTOFF_PAIRS = (
    ("GA1", "GA2", Cutoff.GA1, Cutoff.GA2, ModelFlags.GA),
    ("TC1", "TC2", Cutoff.TC1, Cutoff.TC2, ModelFlags.TC),
    ("NC1", "NC2", Cutoff.NC1, Cutoff.NC2, ModelFlags.NC),
)


@dataclass
class BuildResult:
    """
    Outputs of one build. Anything the caller declined is None.

    For single-sequence builds <traces> holds the one faux trace.
    """
    hmm: Optional[Plan7Model] = None
    traces: Optional[List[Trace]] = None
    postmsa: Optional[Alignment] = None
    gm: Optional[Profile] = None
    om: Optional[OptimizedProfile] = None

    @property
    def trace(self) -> Optional[Trace]:
        return self.traces[0] if self.traces else None

    def discard_declined(self, want_hmm: bool, want_traces: bool, want_postmsa: bool,
                         want_profile: bool, want_oprofile: bool) -> "BuildResult":
        """Drop every intermediate product the caller did not request."""
        if not want_hmm:
            self.hmm = None
        if not want_traces:
            self.traces = None
        if not want_postmsa:
            self.postmsa = None
        if not want_profile:
            self.gm = None
        if not want_oprofile:
            self.om = None
        return self


class Builder:
    """
    Reusable configuration and state for building models in one alphabet.

    Args:
        abc: alphabet every input alignment or sequence must use
        config: optional Plan7Config; when omitted the standard defaults
            apply (fast architecture, GSC weights, entropy weighting,
            arbitrary seed with no reseeding)

    Attributes:
        errbuf: message of the most recent failure, "" after success
    """

    def __init__(self, abc: Alphabet, config: Optional[Plan7Config] = None):
        self.abc = abc
        self.rng = None
        self.prior = None
        self.score_system: Optional[ScoreSystem] = None
        self.errbuf = ""

        if config is None:
            construction = ConstructionConfig()
            weighting = WeightingConfig()
            effective = EffectiveNumberConfig()
            calibration = CalibrationConfig(seed=0)
        else:
            construction = config.construction
            weighting = config.weighting
            effective = config.effective
            calibration = config.calibration

        self.arch_strategy: ArchStrategy = construction.arch
        self.symfrac = construction.symfrac

        self.wgt_strategy: WeightStrategy = weighting.strategy
        self.pbswitch: Optional[int] = weighting.pbswitch
        self.wid = weighting.wid

        self.effn_strategy: EffnStrategy = effective.strategy
        self.eset = effective.eset
        self.re_target = effective.ere
        self.esigma = effective.eX
        self.eid = effective.eid

        self.EvL = calibration.EvL
        self.EvN = calibration.EvN
        self.EfL = calibration.EfL
        self.EfN = calibration.EfN
        self.Eft = calibration.Eft
        self.bp_extrapolation = calibration.bp_extrapolation

        self.seed = calibration.seed
        self.do_reseeding = self.seed != 0

        try:
            if self.do_reseeding:
                self.rng = np.random.default_rng(self.seed)
            else:
                self.rng = np.random.default_rng()
            self.prior = create_prior(abc)
        except MemoryError as e:
            self.close()
            raise AllocationError() from e

        logger.debug(
            f"Builder ready: alphabet={abc.type.value} arch={self.arch_strategy.value} "
            f"wgt={self.wgt_strategy.value} effn={self.effn_strategy.value} seed={self.seed}"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def set_score_system(self, mxfile: Optional[str] = None, env: Optional[str] = None,
                         popen: float = 0.02, pextend: float = 0.4) -> ScoreSystem:
        """
        Load a substitution score system for single-sequence builds.

        Any previously loaded system is discarded first, so a failed
        call leaves the builder with no score system.
        """
        self.errbuf = ""
        self.score_system = None
        try:
            self.score_system = load_score_system(self.abc, mxfile, env, popen, pextend)
        except BuildError as e:
            self._fail(e)
            raise
        except MemoryError as e:
            raise self._fail(AllocationError()) from e
        return self.score_system

    def close(self) -> None:
        """Release everything the builder holds. Safe to call repeatedly."""
        self.score_system = None
        self.prior = None
        self.rng = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return (f"Builder(abc={self.abc!r}, arch={self.arch_strategy.value}, "
                f"wgt={self.wgt_strategy.value}, effn={self.effn_strategy.value})")

    # ------------------------------------------------------------------
    # Public build operations
    # ------------------------------------------------------------------
    def build(self, msa: Alignment, bg: Background, want_hmm: bool = True,
              want_traces: bool = False, want_postmsa: bool = False,
              want_profile: bool = False, want_oprofile: bool = False) -> BuildResult:
        """
        Build a new model from an alignment.

        <msa> is modified: its weights are replaced according to the
        builder's weighting strategy.

        Raises:
            BuildError: a stage failed; errbuf holds the message
        """
        self.errbuf = ""
        if msa.abc != self.abc:
            raise self._fail(ConfigurationError(
                f"alignment alphabet {msa.abc.type.value} does not match builder alphabet {self.abc.type.value}"))
        try:
            msa.digitize()
        except ValueError as e:
            raise self._fail(FormatError(
                f"Alignment {msa.name or '(unnamed)'} contains an illegal character: {e}")) from e
        need_traces = want_traces or want_postmsa

        try:
            self._relative_weights(msa)
            hmm, traces = self._build_model(msa, need_traces)
            self._effective_seqnumber(msa, hmm, bg)
            self._parameterize(hmm)
            self._annotate(msa, hmm)
            cal = self._calibrate(hmm, bg, want_profile, want_oprofile)
            postmsa = self._make_post_msa(msa, hmm, traces, want_postmsa)
        except MemoryError as e:
            raise self._fail(AllocationError()) from e

        logger.info(
            f"Built {hmm.name}: M={hmm.M} nseq={hmm.nseq} eff_nseq={hmm.eff_nseq:.2f}"
        )
        result = BuildResult(hmm=hmm, traces=traces, postmsa=postmsa, gm=cal.gm, om=cal.om)
        return result.discard_declined(want_hmm, want_traces, want_postmsa, want_profile, want_oprofile)

    def single_build(self, sq: Sequence, bg: Background, want_hmm: bool = True,
                     want_trace: bool = False, want_profile: bool = False,
                     want_oprofile: bool = False) -> BuildResult:
        """
        Build a new model from one sequence using the score system.

        Raises:
            ConfigurationError: no score system has been set
            BuildError: model construction or calibration failed
        """
        self.errbuf = ""
        if self.score_system is None:
            raise self._fail(ConfigurationError("score system not initialized"))
        if sq.abc != self.abc:
            raise self._fail(ConfigurationError(
                f"sequence alphabet {sq.abc.type.value} does not match builder alphabet {self.abc.type.value}"))

        try:
            dsq = sq.digitize()
        except ValueError as e:
            raise self._fail(FormatError(f"Sequence {sq.name} contains an illegal character: {e}")) from e

        ss = self.score_system
        try:
            hmm = sequence_model(self.abc, dsq, sq.name, ss.Q, bg.f, ss.popen, ss.pextend)
            cal = self._calibrate(hmm, bg, want_profile, want_oprofile)
            traces = [Trace.single_sequence(len(dsq))] if want_trace else None
        except BuildError as e:
            self._fail(e)
            raise
        except MemoryError as e:
            raise self._fail(AllocationError()) from e

        logger.info(f"Built {hmm.name} from single sequence: M={hmm.M}")
        result = BuildResult(hmm=hmm, traces=traces, gm=cal.gm, om=cal.om)
        return result.discard_declined(want_hmm, want_trace, False, want_profile, want_oprofile)

    def default_target_relent(self, M: int) -> float:
        """
        Default target mean relative entropy per match position (bits).

        Shorter models get a higher target so that a full-length hit
        still scores about <eX> bits; the value is floored per alphabet.
        """
        etarget = 6.0 * (self.esigma + math.log2((M * (M + 1)) // 2)) / (2 * M + 4)
        if self.abc.type == AlphabetType.AMINO:
            floor = ETARGET_AMINO
        elif self.abc.is_nucleic:
            floor = ETARGET_NUCLEIC
        else:
            floor = ETARGET_OTHER
        return max(etarget, floor)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _fail(self, err: BuildError) -> BuildError:
        self.errbuf = err.message
        logger.debug(f"build failed [{err.kind.value}]: {err.message}")
        return err

    def _relative_weights(self, msa: Alignment) -> None:
        strategy = self.wgt_strategy
        try:
            if strategy == WeightStrategy.NONE:
                msa.weights = np.ones(msa.nseq, dtype=float)
            elif strategy == WeightStrategy.GIVEN:
                pass
            elif self.pbswitch is not None and msa.nseq >= self.pbswitch:
                if strategy != WeightStrategy.PB:
                    logger.info(
                        f"{msa.nseq} sequences >= {self.pbswitch}: "
                        f"using position-based weights instead of {strategy.value}"
                    )
                weight_position_based(msa)
            elif strategy == WeightStrategy.PB:
                weight_position_based(msa)
            elif strategy == WeightStrategy.GSC:
                weight_gsc(msa)
            elif strategy == WeightStrategy.BLOSUM:
                weight_blosum(msa, self.wid)
        except BuildError as e:
            raise self._fail(e.relabel("failed to set relative weights in alignment")) from e

    def _build_model(self, msa: Alignment, want_traces: bool):
        name = msa.name or "(unnamed)"
        try:
            if self.arch_strategy == ArchStrategy.FAST:
                return fast_model(msa, self.symfrac, want_traces)
            return hand_model(msa, want_traces)
        except NoConsensusError as e:
            if self.arch_strategy == ArchStrategy.FAST:
                msg = (f"Alignment {name} has no consensus columns w/ > "
                       f"{int(100 * self.symfrac)}% residues - can't build a model.")
            else:
                msg = f"Alignment {name} has no annotated consensus columns - can't build a model."
            raise self._fail(e.relabel(msg)) from e
        except AllocationError as e:
            raise self._fail(e.relabel("Memory allocation failure in model construction.")) from e
        except BuildError as e:
            if self.arch_strategy == ArchStrategy.HAND and isinstance(e, FormatError):
                raise self._fail(e.relabel(f"Alignment {name} has no reference annotation line")) from e
            raise self._fail(EstimationError("internal error in model construction.")) from e
        except MemoryError as e:
            raise self._fail(AllocationError("Memory allocation failure in model construction.")) from e

    def _effective_seqnumber(self, msa: Alignment, hmm: Plan7Model, bg: Background) -> None:
        strategy = self.effn_strategy
        if strategy == EffnStrategy.NONE:
            eff_nseq = float(msa.nseq)
        elif strategy == EffnStrategy.SET:
            eff_nseq = float(self.eset)
        elif strategy == EffnStrategy.CLUST:
            try:
                eff_nseq = float(single_linkage_clusters(msa, self.eid))
            except (AllocationError, MemoryError) as e:
                raise self._fail(AllocationError("memory allocation failed")) from e
            except BuildError as e:
                raise self._fail(e.relabel(
                    f"single linkage clustering algorithm (at {int(100 * self.eid)}% id) failed")) from e
        else:
            etarget = self.re_target if self.re_target is not None else self.default_target_relent(hmm.M)
            try:
                eff_nseq = entropy_weight(hmm, bg, self.prior, etarget)
            except (AllocationError, MemoryError) as e:
                raise self._fail(AllocationError("memory allocation failed")) from e
            except BuildError as e:
                raise self._fail(e.relabel("internal failure in entropy weighting algorithm")) from e

        factor = hmm.scale_counts(eff_nseq)
        logger.debug(f"effective sequence number {eff_nseq:.3f} ({strategy.value}), counts x{factor:.4f}")

    def _parameterize(self, hmm: Plan7Model) -> None:
        try:
            parameter_estimation(hmm, self.prior)
        except BuildError as e:
            raise self._fail(e.relabel("parameter estimation failed")) from e

    def _annotate(self, msa: Alignment, hmm: Plan7Model) -> None:
        if not msa.name:
            raise self._fail(ConfigurationError("Unable to name the HMM."))

        steps = (
            ("Unable to name the HMM.", lambda: hmm.set_name(msa.name)),
            ("Failed to record MSA accession", lambda: hmm.set_accession(msa.acc)),
            ("Failed to record MSA description", lambda: hmm.set_description(msa.desc)),
            ("Failed to record timestamp", hmm.set_ctime),
            ("Failed to record checksum", lambda: self._set_checksum(msa, hmm)),
            ("Failed to determine model composition", hmm.set_composition),
        )
        for message, step in steps:
            try:
                step()
            except (ValueError, TypeError) as e:
                raise self._fail(ConfigurationError(message)) from e
            except MemoryError as e:
                raise self._fail(AllocationError(message)) from e

        for key1, key2, slot1, slot2, flag in CUTOFF_PAIRS:
            if msa.has_cutoff(key1) and msa.has_cutoff(key2):
                hmm.set_cutoff_pair(slot1, slot2, (msa.cutoffs[key1], msa.cutoffs[key2]), flag)

    @staticmethod
    def _set_checksum(msa: Alignment, hmm: Plan7Model) -> None:
        hmm.checksum = msa.checksum()
        hmm.flags |= ModelFlags.CHKSUM

    def _calibrate(self, hmm: Plan7Model, bg: Background,
                   want_profile: bool, want_oprofile: bool) -> CalibrationResult:
        if self.do_reseeding:
            self.rng = np.random.default_rng(self.seed)
        try:
            return calibrate(
                hmm, bg, self.rng,
                EvL=self.EvL, EvN=self.EvN, EfL=self.EfL, EfN=self.EfN, Eft=self.Eft,
                bp_extrapolation=self.bp_extrapolation,
                want_profile=want_profile, want_oprofile=want_oprofile,
            )
        except BuildError as e:
            raise self._fail(e.relabel(f"calibration failed: {e.message}")) from e

    def _make_post_msa(self, msa: Alignment, hmm: Plan7Model,
                       traces: Optional[List[Trace]], want_postmsa: bool) -> Optional[Alignment]:
        if not want_postmsa:
            return None
        try:
            return trace_alignment(msa, traces, hmm.M)
        except BuildError as e:
            raise self._fail(e.relabel("failed to construct post-build alignment from traces")) from e
