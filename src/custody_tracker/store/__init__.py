"""Write-side helpers: projections and integrity policy."""
