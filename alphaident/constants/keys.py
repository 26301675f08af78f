class ConstantsClass(type):
    """A metaclass for classes that should only contain string constants."""

    def __setattr__(self, name, value):
        raise TypeError("Constants class cannot be modified")

    def get_values(cls):
        """Get all user-defined string values of the class."""
        return [
            value
            for key, value in cls.__dict__.items()
            if not key.startswith("__") and isinstance(value, str)
        ]


class ConfigKeys(metaclass=ConstantsClass):
    """String constants for accessing the config."""

    VERSION = "version"
    OUTPUT_DIRECTORY = "output_directory"

    GENERAL = "general"
    THREAD_COUNT = "thread_count"
    LOG_LEVEL = "log_level"

    SEARCH = "search"
    FDR = "fdr"
    PARSIMONY = "parsimony"
    PROTEIN_SCORING = "protein_scoring"


class DissociationType(metaclass=ConstantsClass):
    """String constants for the fragmentation method, determines the complementary ion offset."""

    HCD = "HCD"
    CID = "CID"
    ETD = "ETD"
    ECD = "ECD"


class Terminus(metaclass=ConstantsClass):
    """String constants for the peptide terminus that is retained in a non-specific search."""

    N = "N"
    C = "C"


class ToleranceUnit(metaclass=ConstantsClass):
    """String constants for tolerance units."""

    PPM = "ppm"
    DA = "Da"


class AcceptorType(metaclass=ConstantsClass):
    """String constants for the mass difference acceptor types available in the config."""

    PPM_AROUND_ZERO = "ppm_around_zero"
    DA_AROUND_ZERO = "da_around_zero"
    DOT = "dot"
    INTERVAL = "interval"
    OPEN = "open"


class FdrDenominator(metaclass=ConstantsClass):
    """String constants for the denominator used when estimating the FDR."""

    TARGETS = "targets"
    TARGETS_AND_DECOYS = "targets_and_decoys"


class PsmCols(metaclass=ConstantsClass):
    """String constants for accessing the PSM dataframe columns."""

    SCAN_INDEX = "scan_index"
    SCAN_NUMBER = "scan_number"
    NOTCH = "notch"
    SCORE = "score"
    RUNNER_UP_SCORE = "runner_up_score"
    DELTA_SCORE = "delta_score"
    PEPTIDE_IDS = "peptide_ids"
    PRECURSOR_MASS = "precursor_mass"
    PRECURSOR_CHARGE = "precursor_charge"
    PEPTIDE_MASS = "peptide_mass"
    MASS_ERROR = "mass_error"
    ABS_MASS_ERROR = "abs_mass_error"
    DECOY = "decoy"
    RT = "rt"

    CUMULATIVE_TARGET = "cumulative_target"
    CUMULATIVE_DECOY = "cumulative_decoy"
    FDR = "fdr"
    QVAL = "qval"
    CUMULATIVE_TARGET_NOTCH = "cumulative_target_notch"
    CUMULATIVE_DECOY_NOTCH = "cumulative_decoy_notch"
    FDR_NOTCH = "fdr_notch"
    QVAL_NOTCH = "qval_notch"


class ProteinGroupCols(metaclass=ConstantsClass):
    """String constants for accessing the protein group dataframe columns."""

    PG = "pg"
    PG_MASTER = "pg_master"
    N_PROTEINS = "n_proteins"
    PEPTIDES = "peptides"
    UNIQUE_PEPTIDES = "unique_peptides"
    RAZOR_PEPTIDES = "razor_peptides"
    N_PSMS = "n_psms"
    COVERAGE = "coverage"
    SCORE = "score"
    DECOY = "decoy"
    CONTAMINANT = "contaminant"
    CUMULATIVE_TARGET = "cumulative_target"
    CUMULATIVE_DECOY = "cumulative_decoy"
    FDR = "fdr"
    QVAL = "qval"
