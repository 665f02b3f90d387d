"""
Database Schema Definition

Schema for the clinic records the reporting engine reads: branches, patients,
visits, payments and custom statistic definitions, with indexes on the branch
and patient foreign keys every report filters on.
"""

from typing import Dict


def get_schema_sql() -> str:
    """Get the complete database schema SQL"""
    return """
CREATE TABLE IF NOT EXISTS branches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    location TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS patients (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    branch_id INTEGER NOT NULL REFERENCES branches(id),
    name TEXT NOT NULL,
    age INTEGER,
    weight TEXT,
    height TEXT,
    medical_condition TEXT,
    is_amputee INTEGER DEFAULT 0,
    amputation_site TEXT,
    is_physiotherapy INTEGER DEFAULT 0,
    disease_type TEXT,
    treatment_type TEXT,
    is_medical_support INTEGER DEFAULT 0,
    support_type TEXT,
    total_cost INTEGER DEFAULT 0,
    registration_date TIMESTAMP,
    created_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_patients_branch ON patients(branch_id);
CREATE INDEX IF NOT EXISTS idx_patients_created ON patients(created_at);

CREATE TABLE IF NOT EXISTS visits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    patient_id INTEGER NOT NULL REFERENCES patients(id),
    branch_id INTEGER NOT NULL REFERENCES branches(id),
    visit_date TIMESTAMP,
    treatment_type TEXT,
    notes TEXT
);

CREATE INDEX IF NOT EXISTS idx_visits_patient ON visits(patient_id);
CREATE INDEX IF NOT EXISTS idx_visits_branch ON visits(branch_id);

CREATE TABLE IF NOT EXISTS payments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    patient_id INTEGER NOT NULL REFERENCES patients(id),
    branch_id INTEGER NOT NULL REFERENCES branches(id),
    amount INTEGER NOT NULL,
    notes TEXT,
    date TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_payments_patient ON payments(patient_id);
CREATE INDEX IF NOT EXISTS idx_payments_branch ON payments(branch_id);

CREATE TABLE IF NOT EXISTS custom_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    stat_type TEXT NOT NULL,
    category TEXT NOT NULL,
    filter_field TEXT,
    filter_value TEXT,
    is_global INTEGER DEFAULT 0,
    branch_id INTEGER REFERENCES branches(id),
    created_by TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_custom_stats_branch ON custom_stats(branch_id);
"""


def get_table_descriptions() -> Dict[str, str]:
    """Get human-readable descriptions for each table"""
    return {
        'branches': 'Clinic locations; the primary data-visibility unit',
        'patients': 'Registered patients with condition flags and cumulative cost',
        'visits': 'Patient visits, dated independently of registration',
        'payments': 'Payments received, dated independently of registration',
        'custom_stats': 'Operator-defined statistic definitions',
    }
