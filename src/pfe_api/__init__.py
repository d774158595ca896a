"""HTTP interface of the PFE defense scheduler."""
