"""Services that span the store and object storage."""
