"""Market-data ingestion: Alpha Vantage client, dividend cut detection, refresh jobs."""
