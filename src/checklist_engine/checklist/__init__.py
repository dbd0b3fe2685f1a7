"""
Checklist subsystem.

Components:
- models.py: definitions, instances, repeat rules, cell statuses
- store.py: SQLite-backed instance store with the (definition, date) uniqueness key
- recurrence.py: repeat rule expansion into scheduled dates
- due.py: today / overdue / upcoming sets and the outstanding report
- completion.py: completion toggle and chained regeneration
- forward.py: reassigning an outstanding instance to someone else
- history.py: history grid and retroactive cell correction
- definitions.py: create / edit / delete definitions, "send task"
- notify.py: notification payloads and best-effort dispatch
- reminders.py: time-of-day reminder sweep and its polling loop
- api.py: small high-level helpers used by the connectors
"""
