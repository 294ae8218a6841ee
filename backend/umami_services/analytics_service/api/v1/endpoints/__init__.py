"""
Analytics Service API v1 Endpoints Module

Module Structure:
    - websites: website administration and statistics
    - reports: saved reports and report evaluation
    - segments: saved segments and cohorts
    - tracking: links and pixels
"""
