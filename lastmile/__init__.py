# Last-mile rate-card ingestion and pricing service
