"""
services - Report card engine
Grading, subject resolution, aggregation, ranking and lifecycle logic.
Route handlers in blueprints/ stay thin and call into these modules.
"""
