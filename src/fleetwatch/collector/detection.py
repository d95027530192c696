"""Cluster platform detection from node model numbers."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fleetwatch.models import ClusterKind, NodeInfo

logger = logging.getLogger(__name__)

AWS_MARKER = "AWS"
AZURE_MARKER = "Azure"


def detect_cluster_type(
    nodes: Iterable[NodeInfo],
    hint: ClusterKind | None = None,
) -> tuple[ClusterKind, list[str]]:
    """Classify a cluster and return ``(kind, hardware_skus)``.

    - Any node whose model number carries the AWS marker: ``cloud_aws``
    - Any node whose model number carries the Azure marker: ``cloud_azure``
    - Otherwise ``on_prem``, with the distinct model numbers as SKUs

    *hint* is only used when no node reports a model number at all. A hint
    that disagrees with the node-derived type is logged and ignored.
    """
    has_aws = False
    has_azure = False
    models: set[str] = set()

    for node in nodes:
        model = node.model_number.strip()
        if not model:
            continue
        if AWS_MARKER.lower() in model.lower():
            has_aws = True
        elif AZURE_MARKER.lower() in model.lower():
            has_azure = True
        else:
            models.add(model)

    if has_aws:
        kind = ClusterKind.CLOUD_AWS
    elif has_azure:
        kind = ClusterKind.CLOUD_AZURE
    elif not models and hint is not None:
        return hint, []
    else:
        kind = ClusterKind.ON_PREM

    if hint is not None and hint != kind:
        logger.info(
            "Declared platform %s disagrees with node models (%s); using node models",
            hint, kind,
        )

    skus = sorted(models) if kind is ClusterKind.ON_PREM else []
    return kind, skus
