"""
===============================================================================
GRID DP PROJECT - Visualization Module
===============================================================================
Submodules:
    trajectory_plots -- Stem plots of the optimal state and control sequences
===============================================================================
"""
