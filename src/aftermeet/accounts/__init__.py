"""Connected accounts -- per-user OAuth credentials for Google Calendar and LinkedIn."""
