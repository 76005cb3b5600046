"""Legacy ERP mirror with sales rollups."""
