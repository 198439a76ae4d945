# cardkeep: local card/task organizer
#
# Components:
#   schema.py    - Data model (Card, Category, patches, FilterSpec, SortSpec)
#   storage.py   - Key-value backends (SQLite, memory)
#   store.py     - Persistence gateway: whole-collection load/save
#   query.py     - Filtering, sorting and sidebar aggregates
#   transfer.py  - Backup export and merge-on-import
#   board.py     - CardBoard state container (working copy + view state)
#   config.py    - YAML configuration
#   server.py    - Local JSON API (Flask)

__version__ = "1.0.0"
