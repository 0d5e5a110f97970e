"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Credential store and backends (memory, filesystem, redis)
    - Schedulers and timer coordinator
    - Session registry, snapshots and state machine
    - AuthGate end-to-end and the command router
    - Configuration and observability
"""
