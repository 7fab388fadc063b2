"""Map dataset-specific cluster labels to coarse striatal cell groups.

The mapping is an explicit table: every recognized label is listed, and any
label not in the table maps to UNMAPPED rather than to a guessed group.
Labels are compared after normalization (lowercase, runs of non-alphanumeric
characters collapsed to "_"), so "D1 MSN", "d1-msn" and "D1_MSN" are one key.
"""

from __future__ import annotations

from typing import Dict, Tuple

import pandas as pd

from .coding import _normalize_name

UNMAPPED = "unmapped"

D1_SPN = "D1 SPN"
D2_SPN = "D2 SPN"
CHOLINERGIC = "Cholinergic interneuron"
PV_INTERNEURON = "PV interneuron"
SST_INTERNEURON = "SST interneuron"
TH_INTERNEURON = "TH interneuron"
ASTROCYTE = "Astrocyte"
OLIGODENDROCYTE = "Oligodendrocyte"
OPC = "OPC"
MICROGLIA = "Microglia"
ENDOTHELIAL = "Endothelial"
EPENDYMAL = "Ependymal"
NEUROBLAST = "Neuroblast"

CELL_GROUPS: Tuple[str, ...] = (
    D1_SPN,
    D2_SPN,
    CHOLINERGIC,
    PV_INTERNEURON,
    SST_INTERNEURON,
    TH_INTERNEURON,
    ASTROCYTE,
    OLIGODENDROCYTE,
    OPC,
    MICROGLIA,
    ENDOTHELIAL,
    EPENDYMAL,
    NEUROBLAST,
)

CLUSTER_LABEL_GROUPS: Dict[str, str] = {
    # Direct-pathway spiny projection neurons
    "d1": D1_SPN,
    "d1_msn": D1_SPN,
    "d1_spn": D1_SPN,
    "msn_d1": D1_SPN,
    "spn_d1": D1_SPN,
    "dspn": D1_SPN,
    "drd1_msn": D1_SPN,
    "drd1_spn": D1_SPN,
    "direct_pathway_spn": D1_SPN,
    # Indirect-pathway spiny projection neurons
    "d2": D2_SPN,
    "d2_msn": D2_SPN,
    "d2_spn": D2_SPN,
    "msn_d2": D2_SPN,
    "spn_d2": D2_SPN,
    "ispn": D2_SPN,
    "drd2_msn": D2_SPN,
    "drd2_spn": D2_SPN,
    "indirect_pathway_spn": D2_SPN,
    # Interneurons
    "chat": CHOLINERGIC,
    "chat_interneuron": CHOLINERGIC,
    "cholinergic": CHOLINERGIC,
    "cholinergic_interneuron": CHOLINERGIC,
    "cin": CHOLINERGIC,
    "pv": PV_INTERNEURON,
    "pvalb": PV_INTERNEURON,
    "pvalb_interneuron": PV_INTERNEURON,
    "pthlh_pvalb": PV_INTERNEURON,
    "fsi": PV_INTERNEURON,
    "fast_spiking_interneuron": PV_INTERNEURON,
    "sst": SST_INTERNEURON,
    "sst_interneuron": SST_INTERNEURON,
    "npy_sst": SST_INTERNEURON,
    "sst_npy": SST_INTERNEURON,
    "sst_npy_nos1": SST_INTERNEURON,
    "lts_interneuron": SST_INTERNEURON,
    "th": TH_INTERNEURON,
    "th_interneuron": TH_INTERNEURON,
    # Glia and non-neuronal
    "astro": ASTROCYTE,
    "astrocyte": ASTROCYTE,
    "astrocytes": ASTROCYTE,
    "oligo": OLIGODENDROCYTE,
    "oligodendrocyte": OLIGODENDROCYTE,
    "oligodendrocytes": OLIGODENDROCYTE,
    "mature_oligodendrocyte": OLIGODENDROCYTE,
    "opc": OPC,
    "polydendrocyte": OPC,
    "polydendrocytes": OPC,
    "oligodendrocyte_precursor": OPC,
    "microglia": MICROGLIA,
    "immune": MICROGLIA,
    "endothelial": ENDOTHELIAL,
    "endothelial_stalk": ENDOTHELIAL,
    "endothelial_tip": ENDOTHELIAL,
    "vascular": ENDOTHELIAL,
    "ependy": EPENDYMAL,
    "ependymal": EPENDYMAL,
    "neurogenesis": NEUROBLAST,
    "neuroblast": NEUROBLAST,
    "neuroblasts": NEUROBLAST,
}


def map_cluster_label(label) -> str:
    """Return the coarse group for one cluster label, or UNMAPPED."""

    if label is None or (not isinstance(label, str) and pd.isna(label)):
        return UNMAPPED
    return CLUSTER_LABEL_GROUPS.get(_normalize_name(str(label)), UNMAPPED)


def map_cluster_labels(labels: pd.Series) -> pd.Series:
    # Map unique labels once; cluster columns repeat a few dozen labels across many cells.
    values = labels.astype(object)
    table = {u: map_cluster_label(u) for u in pd.unique(values) if not pd.isna(u)}
    grouped = values.map(table).fillna(UNMAPPED)
    return pd.Series(
        pd.Categorical(grouped, categories=list(CELL_GROUPS) + [UNMAPPED]),
        index=labels.index,
        name="group",
    )
