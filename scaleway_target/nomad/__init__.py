"""Nomad side of scale-in: node selection, drain and purge."""

from .client import Node, NodeStub, NomadClient
from .scaleutils import NomadClusterHooks, select_nodes

__all__ = ["Node", "NodeStub", "NomadClient", "NomadClusterHooks", "select_nodes"]
