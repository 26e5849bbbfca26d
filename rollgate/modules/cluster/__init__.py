"""
Cluster Module - Black Box Interface

Purpose: Everything around a deployment that is not the plan itself
Interface: ClusterManager (k3d lifecycle), ImagePublisher (docker), RouteResolver (url)
Hidden: k3d/docker flags, kubeconfig fallbacks, jsonpath queries
"""

from .cluster import ClusterManager
from .image import ImagePublisher
from .routing import RouteResolver

__all__ = ["ClusterManager", "ImagePublisher", "RouteResolver"]
