"""
erp_modules -- domain modules of the research core.

- permissions: department-scoped permission grants
- directory:   internal people (faculty and students) keyed by UID
- research:    contributions, authors, incentive crediting, progress trackers
"""
