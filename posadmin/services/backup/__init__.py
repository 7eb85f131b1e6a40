"""Database backup, restore and retention for the POS back office.

Submodules:
- config: BackupConfig (environment) and ScheduleSettings (settings table)
- locator: native tool discovery
- dump / restore: the two pipelines, each with an in-process fallback
- storage: artifact naming, listing and retention
- scheduler: the "is a backup due?" trigger
- service: BackupService wiring used by the CLI and the web API
"""
