"""Collectors package for SLURM metrics.

Contains collector implementations for different SLURM resource domains.
Each collector module provides fetch and generate_metrics functions and a
DESCRIPTORS tuple that can be composed with the SlurmCollector class.
"""
