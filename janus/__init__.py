"""Janus — Commission Structure Resolution Engine.

Janus migrates legacy per-certificate broker-split records into a normalized
commercial model: group-level commission Proposals, broker upline
Hierarchies with their state applicability rules, and a policy-to-Proposal
assignment table with explicit provenance. Certificates that cannot share a
structure are carried verbatim as PolicyHierarchyAssignment exceptions.

The engine is a batch, re-runnable transformation: the same raw snapshot
always produces the same target snapshot, ids included.
"""

__version__ = "0.1.0"
