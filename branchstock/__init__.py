# BranchStock - branch inventory ledger and stock transfers
__version__ = "1.0.0"
