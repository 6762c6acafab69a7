"""SQLite storage for repositories, merge requests, reviewers, comments and settings."""