"""
Services Layer

- bracket_seeding / bracket_builder / advancement_engine: pure bracket core,
  no I/O and no logging
- bracket_service: tournament lifecycle on a SQLModel session
- Nothing here depends on HTTP request/response objects
"""
