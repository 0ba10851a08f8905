# multirole

Building blocks for a server that hosts online card duels. The package
covers the pieces that sit around the duel engine itself:

- **Protocol messages** (`multirole.protocol`): client-to-server
  (`CTOSMsg`) and server-to-client (`STOCMsg`) packets, the payload
  structures (`ErrorMsg`, `DeckErrorMsg`, `VerErrorMsg`, `RPSResult`,
  `TimeLimit`, `PlayerEnter`, `Chat2`) and the shared structures
  `HostInfo`, `ClientVersion` and `DeckLimits`.
- **Core message handling** (`multirole.coremsg`, `multirole.query`):
  splits engine output into messages (`split_to_msgs`), decides who gets
  each message (`distribution_type`, `receiving_team`), zeroes card codes
  the other team must not see (`strip_message_for_team`), lists the card
  queries to run around a message, and packs and unpacks card queries
  (`serialize_single_query`, `deserialize_location_query`, ...).
- **Replays** (`multirole.replay`, `multirole.replay_manager`): `Replay`
  records a duel's messages and responses and `serialize()` builds an
  LZMA-compressed replay file; `ReplayManager` hands out replay ids kept in
  a `lastId` file guarded by a lock file, and saves replays as `<id>.yrpX`.
- **Banlists** (`multirole.banlist`): `parse_banlists` reads banlist text
  and returns a dict of banlist hash to `Banlist`.
- **Card data** (`multirole.cardsdb`): `CardDatabase` merges SQLite card
  databases and caches lookups by card code.
- **Decks** (`multirole.deck`): `Deck` holds main, extra and side piles and
  counts every card code with `code_map()`.
- **Random numbers** (`multirole.rng`): `SplitMix64` and
  `Xoshiro256StarStar` generators.
- **Logging** (`multirole.loghandler`, `multirole.sinks`): `LogHandler`
  sends service records and duel error records to file, stdout, stderr,
  webhook or null sinks chosen per service and category, and
  `make_room_logger` opens one log file per room.
- **Repository observers** (`multirole.observer`, `multirole.providers`):
  `BanlistProvider`, `DataProvider` and `ScriptProvider` load files whose
  names match a regular expression whenever `on_add` or `on_diff` reports
  files of a checked-out repository.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Examples

Parse banlists and look one up by hash:

```python
from multirole.banlist import parse_banlists

with open("lflist.conf", encoding="utf-8") as f:
    banlists = parse_banlists(f)

for hash_value, banlist in banlists.items():
    print(hex(hash_value), banlist.whitelist, len(banlist.entries))
```

Draw numbers from a seeded generator:

```python
from multirole.rng import SplitMix64, Xoshiro256StarStar

seeder = SplitMix64(12345)
rng = Xoshiro256StarStar([seeder() for _ in range(4)])
print(rng())
```

Look up card data from merged databases:

```python
from multirole.cardsdb import CardDatabase

with CardDatabase() as db:
    db.merge("/path/to/cards.cdb")
    card = db.data_from_code(89631139)
    print(card.attack, card.defense, card.level)
```

Build a server-to-client packet:

```python
from multirole.protocol import STOCMsg, RPSResult

packet = STOCMsg.from_struct(RPSResult(res0=1, res1=2))
wire = bytes(packet)
```

Configure logging:

```python
from multirole.constants import Level, ServiceType
from multirole.loghandler import LogHandler

stdout = {"type": "stdout", "properties": {}}
config = {
    "roomLogging": {"enabled": False, "path": "rooms"},
    "serviceSinks": {name: stdout for name in (
        "gitRepo", "multirole", "banlistProvider", "coreProvider",
        "dataProvider", "logHandler", "replayManager", "scriptProvider")},
    "ecSinks": {name: stdout for name in (
        "core", "official", "speed", "rush", "other")},
}
handler = LogHandler(config)
handler.log(ServiceType.MULTIROLE, Level.INFO, "Listening on port {}", 7911)
```

## What this package does not do

It has no command to run and no network server: it does not accept client
connections, run rooms or duels, or load and drive the duel engine. It does
not fetch or update git repositories either; the providers only react to
the file lists handed to their `on_add` and `on_diff` methods.