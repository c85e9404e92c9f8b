# peer_store.py
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

# column -> declaration, in table order
COLUMNS = {
    "symbol": "TEXT PRIMARY KEY",
    "name": "TEXT",
    "peers": "TEXT NOT NULL",
    "sector": "TEXT",
    "industry": "TEXT",
    "updated_at": "TEXT",
}


class StoredPeers(NamedTuple):
    symbol: str
    name: Optional[str]
    peers: List[str]


def _decode_peers(raw: str) -> List[str]:
    try:
        peers = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(peers, list):
        return []
    return [str(p) for p in peers if p]


class PeerStore:
    """Curated peer lists keyed by ticker (table `stock_peers`)."""

    def __init__(self, db_path: str = "peers.db"):
        self.db_path = db_path
        Path(db_path).touch(exist_ok=True)
        self._ensure()

    def _ensure(self):
        with sqlite3.connect(self.db_path) as con:
            cols = ", ".join(f"{name} {decl}" for name, decl in COLUMNS.items())
            con.execute(f"CREATE TABLE IF NOT EXISTS stock_peers ({cols})")
            present = {row[1] for row in con.execute("PRAGMA table_info(stock_peers)").fetchall()}
            # Tables created before the admin columns existed keep their rows
            for name, decl in COLUMNS.items():
                if name not in present:
                    con.execute(f"ALTER TABLE stock_peers ADD COLUMN {name} {decl}")
            con.commit()

    def get_peers(self, symbol: str) -> Optional[StoredPeers]:
        with sqlite3.connect(self.db_path) as con:
            row = con.execute(
                "SELECT symbol, name, peers FROM stock_peers WHERE symbol=?", (symbol,)
            ).fetchone()
        if not row:
            return None
        sym, name, raw = row
        return StoredPeers(sym, name, _decode_peers(raw))

    def set_peers(self, symbol: str, peers: List[str], name: Optional[str] = None,
                  sector: Optional[str] = None, industry: Optional[str] = None) -> Dict[str, Any]:
        row = {
            "symbol": symbol.upper(),
            "name": name,
            "peers": [p.upper() for p in peers],
            "sector": sector or None,
            "industry": industry or None,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        with sqlite3.connect(self.db_path) as con:
            con.execute(
                "INSERT OR REPLACE INTO stock_peers (symbol, name, peers, sector, industry, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (row["symbol"], name, json.dumps(row["peers"]), row["sector"], row["industry"], row["updated_at"]),
            )
            con.commit()
        return row

    def list_peers(self, limit: int = 100, offset: int = 0, search: str = "") -> Tuple[List[Dict[str, Any]], int]:
        """Most recently updated first; `search` matches symbol, name, sector or industry."""
        where, args = "", ()
        if search:
            where = "WHERE symbol LIKE ? OR name LIKE ? OR sector LIKE ? OR industry LIKE ?"
            args = (f"%{search}%",) * 4
        with sqlite3.connect(self.db_path) as con:
            rows = con.execute(
                "SELECT symbol, name, peers, sector, industry, updated_at FROM stock_peers "
                f"{where} ORDER BY updated_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (*args, limit, offset),
            ).fetchall()
            (total,) = con.execute(f"SELECT COUNT(*) FROM stock_peers {where}", args).fetchone()
        out = [
            {"symbol": sym, "name": name, "peers": _decode_peers(raw), "sector": sector,
             "industry": industry, "updated_at": updated_at}
            for sym, name, raw, sector, industry, updated_at in rows
        ]
        return out, total

    def delete_peers(self, symbol: str) -> bool:
        with sqlite3.connect(self.db_path) as con:
            cur = con.execute("DELETE FROM stock_peers WHERE symbol=?", (symbol.upper(),))
            con.commit()
        return cur.rowcount > 0
