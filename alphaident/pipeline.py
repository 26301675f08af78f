import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

import pandas as pd

from alphaident.constants.keys import ConfigKeys, PsmCols
from alphaident.fdr.fdr import perform_psm_fdr
from alphaident.inference.containers import ProteinGroup
from alphaident.inference.parsimony import perform_parsimony
from alphaident.inference.protein_fdr import (
    best_psm_score_per_sequence,
    perform_protein_fdr,
    score_protein_groups,
)
from alphaident.reporting import logging as reporting
from alphaident.reporting.logging import logger
from alphaident.search.acceptors import acceptors_from_config
from alphaident.search.cancellation import CancellationToken
from alphaident.search.containers import CompactPeptide, FragmentIndex, Scan
from alphaident.search.engine import IndexedSearchEngine, NonSpecificSettings
from alphaident.search.tolerance import tolerance_from_config
from alphaident.workflow.config import USER_DEFINED, Config


@dataclass
class PipelineResults:
    """Results of a pipeline run, protein level results are None if parsimony is disabled."""

    psm_df: pd.DataFrame
    protein_groups: list[ProteinGroup] | None = None
    protein_group_df: pd.DataFrame | None = None


class Pipeline:
    def __init__(
        self,
        config: dict | Config | None = None,
        output_folder: str | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> None:
        """Highest level class running search, PSM FDR, parsimony and protein FDR.

        Parameters
        ----------
        config : dict | Config, optional
            Config used to update the default config.

        output_folder : str, optional
            Folder for the log file. Overrides `output_directory` of the config.

        cancellation_token : CancellationToken, optional
            Token to cancel a running search from another thread.

        """
        self.config = Config.load_default()

        if config is not None:
            update_config = (
                config if isinstance(config, Config) else Config(config, USER_DEFINED)
            )
            self.config.update([update_config], do_print=False)

        if output_folder is not None:
            self.config[ConfigKeys.OUTPUT_DIRECTORY] = output_folder

        self.output_folder = self.config[ConfigKeys.OUTPUT_DIRECTORY]
        if self.output_folder is not None:
            os.makedirs(self.output_folder, exist_ok=True)
            reporting.init_logging(
                self.output_folder,
                self.config[ConfigKeys.GENERAL][ConfigKeys.LOG_LEVEL],
            )
            reporting.print_logo()
            reporting.print_environment()
        else:
            logger.setLevel(
                logging.getLevelName(
                    self.config[ConfigKeys.GENERAL][ConfigKeys.LOG_LEVEL]
                )
            )

        self.cancellation_token = (
            cancellation_token if cancellation_token is not None else CancellationToken()
        )
        self.acceptors = acceptors_from_config(
            self.config[ConfigKeys.SEARCH]["acceptors"]
        )

    def search(
        self,
        scans: list[Scan],
        peptides: list[CompactPeptide],
        fragment_index: FragmentIndex,
    ) -> pd.DataFrame:
        """Run the indexed search and return the PSM dataframe."""
        search_config = self.config[ConfigKeys.SEARCH]

        non_specific = None
        if search_config["non_specific"]["enabled"]:
            non_specific = NonSpecificSettings(
                terminus=search_config["non_specific"]["terminus"],
                min_peptide_length=search_config["non_specific"]["min_peptide_length"],
            )

        engine = IndexedSearchEngine(
            scans,
            peptides,
            fragment_index,
            self.acceptors,
            tolerance_from_config(
                search_config["fragment_tolerance"],
                search_config["fragment_tolerance_unit"],
            ),
            dissociation_type=search_config["dissociation_type"],
            add_complementary_ions=search_config["add_complementary_ions"],
            precursor_tolerance=tolerance_from_config(
                search_config["precursor_tolerance"],
                search_config["precursor_tolerance_unit"],
            ),
            score_cutoff=search_config["score_cutoff"],
            non_specific=non_specific,
            thread_count=self.config[ConfigKeys.GENERAL][ConfigKeys.THREAD_COUNT],
            cancellation_token=self.cancellation_token,
        )
        return engine.run().to_df()

    def run(
        self,
        scans: list[Scan],
        peptides: list[CompactPeptide],
        fragment_index: FragmentIndex,
        peptide_mapping: dict | None = None,
        score_function: Callable[[ProteinGroup], float] = best_psm_score_per_sequence,
    ) -> PipelineResults:
        """Run all steps.

        Parameters
        ----------
        scans : list[Scan]
            Scans to search.

        peptides : list[CompactPeptide]
            Peptide index.

        fragment_index : FragmentIndex
            Fragment index over the peptide index.

        peptide_mapping : dict[CompactPeptide, set[PeptideWithSetMods]], optional
            Placements of the compact peptides on proteins, required for protein inference.

        score_function : Callable[[ProteinGroup], float]
            Protein group score function.

        Returns
        -------
        PipelineResults
            PSM and protein group results.
        """
        fdr_config = self.config[ConfigKeys.FDR]
        parsimony_config = self.config[ConfigKeys.PARSIMONY]
        scoring_config = self.config[ConfigKeys.PROTEIN_SCORING]

        psm_df = self.search(scans, peptides, fragment_index)

        logger.progress("Calculating PSM q-values")
        psm_df = perform_psm_fdr(
            psm_df,
            n_notches=self.acceptors.n_notches,
            keep_best_per_scan=fdr_config["keep_best_per_scan"],
            qval_cutoff=fdr_config["psm_qval_cutoff"],
        )

        if not parsimony_config["enabled"] or peptide_mapping is None:
            logger.info("Skipping protein inference")
            return PipelineResults(psm_df)

        logger.progress("Performing protein inference")
        treat_modified = parsimony_config["treat_modified_peptides_as_different"]
        # parsimony only considers peptides of confident PSMs
        confident_df = psm_df[
            (psm_df[PsmCols.QVAL] <= scoring_config["psm_qval_cutoff"])
            & (psm_df[PsmCols.QVAL_NOTCH] <= scoring_config["psm_qval_cutoff"])
        ]
        observed = {
            peptides[peptide_id]
            for peptide_ids in confident_df[PsmCols.PEPTIDE_IDS]
            for peptide_id in peptide_ids
        }
        parsimony_result = perform_parsimony(
            {cp: placed for cp, placed in peptide_mapping.items() if cp in observed},
            treat_modified_peptides_as_different=treat_modified,
        )

        protein_groups = score_protein_groups(
            parsimony_result.protein_groups,
            psm_df,
            peptides,
            parsimony_result.peptide_mapping,
            psm_qval_cutoff=scoring_config["psm_qval_cutoff"],
            score_function=score_function,
            merge_indistinguishable_groups=scoring_config["merge_indistinguishable_groups"],
            no_one_hit_wonders=scoring_config["no_one_hit_wonders"],
        )

        logger.progress("Calculating protein group q-values")
        protein_groups, protein_group_df = perform_protein_fdr(
            protein_groups, qval_cutoff=scoring_config["protein_qval_cutoff"]
        )
        return PipelineResults(psm_df, protein_groups, protein_group_df)

