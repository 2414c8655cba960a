"""Pure domain core: status machines, partitioning, ledger projection, DTOs."""
