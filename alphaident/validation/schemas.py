import numpy as np

from alphaident.constants.keys import ProteinGroupCols, PsmCols
from alphaident.validation.base import Optional, Required, Schema

psm_schema = Schema(
    "psm_df",
    [
        Required(PsmCols.SCAN_INDEX, np.int64),
        Optional(PsmCols.SCAN_NUMBER, np.int64),
        Required(PsmCols.NOTCH, np.int64),
        Required(PsmCols.SCORE, np.float64),
        Optional(PsmCols.DELTA_SCORE, np.float64),
        Required(PsmCols.DECOY, np.uint8),
        Optional(PsmCols.PRECURSOR_MASS, np.float64),
        Optional(PsmCols.PEPTIDE_MASS, np.float64),
        Required(PsmCols.ABS_MASS_ERROR, np.float64),
        Optional(PsmCols.PEPTIDE_IDS, object),
    ],
)

protein_group_schema = Schema(
    "protein_group_df",
    [
        Required(ProteinGroupCols.PG, object),
        Required(ProteinGroupCols.PG_MASTER, object),
        Required(ProteinGroupCols.SCORE, np.float64),
        Required(ProteinGroupCols.DECOY, np.uint8),
        Optional(ProteinGroupCols.CONTAMINANT, np.uint8),
        Optional(ProteinGroupCols.N_PSMS, np.int64),
    ],
)

fragment_index_schema = Schema(
    "fragment_index_df",
    [
        Required("mass", np.float64),
        Required("peptide_id", np.int64),
    ],
)
