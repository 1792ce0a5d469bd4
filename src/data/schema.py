"""
DuckDB table definitions for the ballots and reports databases.

The ballots database holds normalized ballot data as produced by
ingestion; the reports database holds tabulated, display-ready results.
"""

BALLOTS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS jurisdictions (
        id INTEGER PRIMARY KEY,
        path TEXT UNIQUE NOT NULL,           -- e.g. "us/ny/nyc"
        name TEXT NOT NULL,
        kind TEXT NOT NULL,                  -- "city", "state", "county"
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS elections (
        id INTEGER PRIMARY KEY,
        jurisdiction_id INTEGER NOT NULL,
        path TEXT NOT NULL,                  -- e.g. "2025/07"
        name TEXT NOT NULL,
        date DATE NOT NULL,
        data_format TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (jurisdiction_id, path)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contests (
        id INTEGER PRIMARY KEY,
        election_id INTEGER NOT NULL,
        office_id TEXT NOT NULL,             -- e.g. "mayor"
        office_name TEXT NOT NULL,
        jurisdiction_name TEXT,
        jurisdiction_code TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (election_id, office_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS candidates (
        id INTEGER PRIMARY KEY,              -- declaration order within a contest
        contest_id INTEGER NOT NULL,
        external_id TEXT,
        name TEXT NOT NULL,
        candidate_type TEXT NOT NULL,        -- "regular", "write_in"
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ballots (
        id INTEGER PRIMARY KEY,
        contest_id INTEGER NOT NULL,
        ballot_id TEXT NOT NULL,             -- identifier from the source export
        precinct_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (contest_id, ballot_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ballot_choices (
        ballot_id INTEGER NOT NULL,
        rank_position INTEGER NOT NULL,
        choice_type TEXT NOT NULL,           -- "candidate", "undervote", "overvote"
        candidate_id INTEGER,                -- NULL for undervote/overvote
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (ballot_id, rank_position)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_candidates_contest ON candidates(contest_id)",
    "CREATE INDEX IF NOT EXISTS idx_ballots_contest ON ballots(contest_id)",
    "CREATE INDEX IF NOT EXISTS idx_ballot_choices_ballot ON ballot_choices(ballot_id)",
]

REPORTS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS election_index (
        path TEXT NOT NULL,                  -- "<jurisdiction>/<election>"
        jurisdiction_name TEXT NOT NULL,
        election_name TEXT NOT NULL,
        date TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contest_summaries (
        contest_path TEXT NOT NULL,
        election_path TEXT NOT NULL,
        office TEXT NOT NULL,
        office_name TEXT NOT NULL,
        name TEXT NOT NULL,
        winner TEXT,
        num_candidates INTEGER NOT NULL,
        num_rounds INTEGER NOT NULL,
        ballot_count INTEGER NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contest_reports (
        path TEXT NOT NULL,                  -- "<jurisdiction>/<election>/<office>"
        election_path TEXT NOT NULL,
        office TEXT NOT NULL,
        report_json TEXT NOT NULL,
        ballot_count INTEGER NOT NULL,
        winner TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contest_rounds (
        contest_path TEXT NOT NULL,
        round_number INTEGER NOT NULL,
        candidate_name TEXT NOT NULL,
        votes INTEGER NOT NULL,
        percentage DOUBLE,
        eliminated BOOLEAN DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS candidate_performance (
        contest_path TEXT NOT NULL,
        candidate_name TEXT NOT NULL,
        first_choice_votes INTEGER NOT NULL,
        final_votes INTEGER,
        elimination_round INTEGER,           -- NULL if never eliminated
        vote_transfers_in INTEGER DEFAULT 0,
        vote_transfers_out INTEGER DEFAULT 0,
        is_winner BOOLEAN DEFAULT FALSE
    )
    """,
]
