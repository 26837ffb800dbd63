"""
===============================================================================
GRID DP PROJECT - Core Module
===============================================================================
Grid, table and configuration primitives shared by the solver and the driver.

Submodules:
    grid            -- DiscreteGrid and the shared nearest-grid-point lookup
    data_structures -- DPTable: dense cost-to-go and policy arena
    exceptions      -- DPError hierarchy raised by the solver
    constants       -- Reference scenario parameters and solver defaults
    config          -- YAML run configuration loading
===============================================================================
"""
