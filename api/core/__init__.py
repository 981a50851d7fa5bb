"""
Shared, cross-cutting code for the API.

`core/` should contain small building blocks that multiple features use
(DB wiring, the ordered key-value store, pagination, settings, logging).
Keep feature-specific keys and business logic in the corresponding feature
package (e.g. `art/`).
"""
