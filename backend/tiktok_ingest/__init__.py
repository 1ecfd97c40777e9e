"""TikTok profile/post ingestion with content-addressed media caching."""
