"""Command-line entry point for the memoreum agent.

Usage examples:
    # One-off question, streamed
    memoreum ask "What did we learn about gas fees?"

    # Interactive chat
    memoreum chat --model gpt-4o

    # Agents and wallet
    memoreum agent register scout
    memoreum wallet balance

    # Marketplace
    memoreum market browse --limit 10
    memoreum market buy <listing-id>

    # Local configuration
    memoreum config set-key mk_live_...
    memoreum config add-provider anthropic sk-ant-... --name default
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from memoreum.agent.agent import AgentConfig, MemoreumAgent
from memoreum.cli.store import ConfigStore, LocalAgent
from memoreum.client import MemoreumClient
from memoreum.config import settings
from memoreum.errors import ConfigError, MemoreumError
from memoreum.llm.base import ProviderConfig
from memoreum.llm.factory import available_providers, get_available_models, get_default_model
from memoreum.memory.models import CreateMemoryInput, MemoryType

if TYPE_CHECKING:
    from memoreum.client import APIResponse

logger = logging.getLogger(__name__)

CHAT_HELP = """\
Commands:
  /clear          Clear conversation history
  /history        Show conversation history
  /model [name]   Show or switch the model
  /help           Show this help
  /exit           Quit"""


# -- Resolution -----------------------------------------------------------------


def _api_key(store: ConfigStore) -> str:
    key = store.resolve_api_key() or settings.memoreum_api_key
    if not key:
        msg = "No API key configured. Run `memoreum config set-key KEY` or set MEMOREUM_API_KEY."
        raise ConfigError(msg)
    return key


def _provider_config(store: ConfigStore, model: str | None) -> ProviderConfig:
    config = store.get_default_provider() or settings.get_provider_config()
    if config is None:
        msg = (
            "No AI provider configured. Run `memoreum config add-provider TAG API_KEY` "
            "or set AI_PROVIDER and AI_API_KEY."
        )
        raise ConfigError(msg)
    if model:
        config = config.model_copy(update={"model": model})
    return config


def _client(store: ConfigStore, *, authenticated: bool = True) -> MemoreumClient:
    config = store.get_config()
    key = _api_key(store) if authenticated else store.resolve_api_key() or settings.memoreum_api_key
    return MemoreumClient(
        key,
        base_url=config.base_url or settings.memoreum_base_url.strip() or None,
        network=config.network,
        timeout=settings.http_timeout,
    )


def _agent(store: ConfigStore, model: str | None = None, system: str | None = None) -> MemoreumAgent:
    current = store.get_current_agent()
    config = AgentConfig(
        name=current.name if current else "memoreum-cli",
        ai_provider=_provider_config(store, model),
        auto_store=settings.auto_store,
        system_prompt=system or settings.system_prompt or None,
    )
    return MemoreumAgent(_api_key(store), config, client=_client(store))


def _check(response: APIResponse) -> None:
    if not response.success:
        raise MemoreumError(response.error or "Request failed")


# -- Chat -----------------------------------------------------------------------


async def _print_stream(agent: MemoreumAgent, message: str) -> None:
    async for fragment in agent.chat_stream(message):
        print(fragment, end="", flush=True)
    print()


async def cmd_ask(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _agent(store, args.model) as agent:
        await _print_stream(agent, args.message)


async def cmd_chat(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _agent(store, args.model, args.system) as agent:
        print(f"Chatting with {agent.name} ({agent.get_model()}). Type /help for commands.")
        while True:
            try:
                line = (await asyncio.to_thread(input, "You: ")).strip()
            except EOFError:
                break
            if not line:
                continue
            if line.startswith("/"):
                if not _chat_command(agent, line):
                    break
                continue
            print("Agent: ", end="", flush=True)
            try:
                if args.no_stream:
                    print(await agent.chat(line))
                else:
                    await _print_stream(agent, line)
            except MemoreumError as e:
                print(f"\nError: {e}", file=sys.stderr)


def _chat_command(agent: MemoreumAgent, line: str) -> bool:
    """Handle a slash command. Returns False when the loop should end."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()
    if command in ("/exit", "/quit"):
        return False
    if command == "/clear":
        agent.clear_history()
        print("History cleared.")
    elif command == "/history":
        for msg in agent.get_history()[1:]:
            print(f"[{msg.role}] {msg.content}")
    elif command == "/model":
        if arg:
            agent.set_model(arg)
        print(f"Model: {agent.get_model()}")
    elif command == "/help":
        print(CHAT_HELP)
    else:
        print(f"Unknown command: {command}. Type /help for commands.")
    return True


# -- Agent ----------------------------------------------------------------------


async def cmd_agent_register(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store, authenticated=False) as client:
        response = await client.register_agent(args.name)
    _check(response)
    profile = response.data
    if not profile.api_key:
        msg = "Registration succeeded but no API key was returned"
        raise MemoreumError(msg)
    store.add_agent(
        LocalAgent(
            id=profile.id,
            name=profile.agent_name or args.name,
            api_key=profile.api_key,
            wallet_address=profile.wallet_address,
        )
    )
    store.set_current_agent(profile.id)
    print(f"Agent {args.name} registered.")
    print(f"Agent ID: {profile.id}")
    print(f"API key:  {profile.api_key}")
    print(f"Wallet:   {profile.wallet_address or '(none)'}")
    print("Save the API key now. It cannot be retrieved later.")


async def cmd_agent_info(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_agent()
    _check(response)
    profile = response.data
    print(f"ID:         {profile.id}")
    print(f"Name:       {profile.agent_name}")
    print(f"Wallet:     {profile.wallet_address}")
    print(f"Reputation: {profile.reputation_score}")
    print(f"Sales:      {profile.total_sales}")
    print(f"Purchases:  {profile.total_purchases}")


async def cmd_agent_stats(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_agent_stats()
    _check(response)
    stats = response.data
    print(f"Memories stored:    {stats.memories_stored}")
    print(f"Memories sold:      {stats.memories_sold}")
    print(f"Memories purchased: {stats.memories_purchased}")
    print(f"Total earnings:     {stats.total_earnings} ETH")
    print(f"Total spent:        {stats.total_spent} ETH")
    print(f"Reputation:         {stats.reputation_score}")


async def cmd_agent_list(args: argparse.Namespace, store: ConfigStore) -> None:
    agents = store.get_agents()
    if not agents:
        print("No local agents. Run `memoreum agent register NAME`.")
    current = store.get_current_agent()
    for agent in agents:
        marker = "*" if current and agent.id == current.id else " "
        print(f"{marker} {agent.id}  {agent.name}  {agent.wallet_address}")


async def cmd_agent_remove(args: argparse.Namespace, store: ConfigStore) -> None:
    if not store.remove_agent(args.id):
        msg = f"No local agent with id {args.id}"
        raise ConfigError(msg)
    print(f"Agent {args.id} removed.")


async def cmd_agent_regenerate_key(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.regenerate_api_key()
    _check(response)
    new_key = (response.data or {}).get("apiKey")
    if not new_key:
        msg = "No API key in response"
        raise MemoreumError(msg)
    current = store.get_current_agent()
    if current is not None:
        store.add_agent(current.model_copy(update={"api_key": new_key}))
    else:
        store.set_api_key(new_key)
    print(f"New API key: {new_key}")
    print("The previous key no longer works.")


# -- Memory ---------------------------------------------------------------------


async def cmd_memory_search(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.search_memories(args.query, args.limit)
    _check(response)
    if not response.data:
        print("No memories found.")
    for memory in response.data or []:
        print(f"{memory.id}  {memory.title}  [{', '.join(memory.tags)}]")


async def cmd_memory_list(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.list_memories(limit=args.limit)
    _check(response)
    page = response.data
    for memory in page.items:
        status = "public" if memory.is_public else "private"
        print(f"{memory.id}  {memory.title}  ({memory.memory_type}, {status})")
    print(f"{len(page.items)} of {page.total} memories")


async def cmd_memory_store(args: argparse.Namespace, store: ConfigStore) -> None:
    memory = CreateMemoryInput(
        title=args.title,
        content=args.content,
        memory_type=MemoryType(args.type),
        tags=[t.strip() for t in args.tags.split(",") if t.strip()] if args.tags else [],
        is_public=args.public,
    )
    async with _client(store) as client:
        response = await client.store_memory(memory)
    _check(response)
    print(f"Stored memory {response.data.id}")


async def cmd_memory_get(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_memory(args.id)
    _check(response)
    memory = response.data
    print(f"{memory.title} ({memory.memory_type})")
    print(f"ID:         {memory.id}")
    print(f"Importance: {memory.importance}")
    print(f"Tags:       {', '.join(memory.tags) or '(none)'}")
    if memory.is_public:
        print(f"Price:      {memory.price_eth or '?'} ETH")
    print()
    print(memory.content)


async def cmd_memory_delete(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.delete_memory(args.id)
    _check(response)
    print(f"Deleted memory {args.id}")


async def cmd_memory_purchased(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_purchased_memories()
    _check(response)
    if not response.data:
        print("No purchased memories.")
    for memory in response.data or []:
        print(f"{memory.id}  {memory.title}  ({memory.memory_type})")


async def cmd_memory_categories(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_categories()
    _check(response)
    for category in response.data or []:
        if isinstance(category, dict):
            print(f"{category.get('id', '')}  {category.get('name', '')}")
        else:
            print(category)


# -- Marketplace ----------------------------------------------------------------


async def cmd_market_browse(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.browse_marketplace(limit=args.limit)
    _check(response)
    if not response.data.items:
        print("No listings found.")
    for listing in response.data.items:
        title = listing.memory.title if listing.memory else listing.memory_id
        print(f"{listing.id}  {listing.price_eth} ETH  {title}")


async def cmd_market_buy(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.purchase_memory(args.listing_id)
    _check(response)
    print(f"Purchased listing {args.listing_id} (tx {response.data.tx_hash or 'pending'})")


async def cmd_market_sell(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.create_listing(args.memory_id, args.price_eth)
    _check(response)
    print(f"Listed memory {args.memory_id} as {response.data.id} for {args.price_eth} ETH")


async def cmd_market_view(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_listing(args.listing_id)
    _check(response)
    listing = response.data
    print(f"Listing: {listing.id}")
    print(f"Price:   {listing.price_eth} ETH")
    print(f"Views:   {listing.views}")
    print(f"Active:  {'yes' if listing.is_active else 'no'}")
    if listing.memory:
        print(f"Memory:  {listing.memory.title} ({listing.memory.memory_type})")
        print(f"Tags:    {', '.join(listing.memory.tags) or '(none)'}")


async def cmd_market_my_listings(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_my_listings()
    _check(response)
    if not response.data:
        print("You have no listings.")
    for listing in response.data or []:
        status = "active" if listing.is_active else "inactive"
        print(f"{listing.id}  {listing.price_eth} ETH  {listing.memory_id}  ({status})")


async def cmd_market_remove(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.remove_listing(args.listing_id)
    _check(response)
    print(f"Removed listing {args.listing_id}")


# -- Wallet ---------------------------------------------------------------------


async def cmd_wallet_info(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_wallet()
    _check(response)
    wallet = response.data
    print(f"Address: {wallet.address}")
    print(f"Balance: {wallet.balance_eth} ETH")
    print(f"Network: {wallet.network or store.get_config().network}")


async def cmd_wallet_balance(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_balance()
    _check(response)
    print(f"{response.data.balance_eth} ETH")


async def cmd_wallet_transactions(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_transaction_history(args.type)
    _check(response)
    if not response.data:
        print("No transactions.")
    for tx in response.data or []:
        print(f"{tx.id}  {tx.price_eth} ETH  {tx.status}  memory {tx.memory_id}")


async def cmd_wallet_transaction(args: argparse.Namespace, store: ConfigStore) -> None:
    async with _client(store) as client:
        response = await client.get_transaction(args.id)
    _check(response)
    tx = response.data
    print(f"Transaction: {tx.id}")
    print(f"Memory:      {tx.memory_id}")
    print(f"Price:       {tx.price_eth} ETH (fee {tx.platform_fee_eth} ETH)")
    print(f"Status:      {tx.status} / escrow {tx.escrow_status}")
    if tx.buyer_to_platform_tx_hash:
        print(f"Payment tx:  {tx.buyer_to_platform_tx_hash}")
    if tx.platform_to_seller_tx_hash:
        print(f"Payout tx:   {tx.platform_to_seller_tx_hash}")


# -- Config ---------------------------------------------------------------------


async def cmd_config_show(args: argparse.Namespace, store: ConfigStore) -> None:
    config = store.get_config()
    key = config.api_key
    print(f"Config file: {store.path}")
    print(f"API key:     {key[:8] + '...' if key else '(not set)'}")
    print(f"Network:     {config.network}")
    print(f"Base URL:    {_client(store, authenticated=False).base_url}")
    current = store.get_current_agent()
    print(f"Agent:       {current.name + ' (' + current.id + ')' if current else '(none)'}")
    for name, provider in store.get_providers().items():
        print(f"Provider:    {name} -> {provider.provider} ({provider.model or 'default model'})")


async def cmd_config_set_key(args: argparse.Namespace, store: ConfigStore) -> None:
    store.set_api_key(args.key)
    print("API key saved.")


async def cmd_config_set_network(args: argparse.Namespace, store: ConfigStore) -> None:
    store.set_network(args.network)
    print(f"Network set to {args.network}.")


async def cmd_config_url(args: argparse.Namespace, store: ConfigStore) -> None:
    url = args.url.rstrip("/")
    store.set_config(base_url=url)
    print(f"Base URL set to {url}.")


async def cmd_config_add_provider(args: argparse.Namespace, store: ConfigStore) -> None:
    if args.tag not in available_providers():
        msg = f"Unsupported AI provider: {args.tag}"
        raise ConfigError(msg)
    config = ProviderConfig(
        provider=args.tag,
        api_key=args.api_key,
        model=args.model or get_default_model(args.tag),
    )
    store.set_provider(args.name or args.tag, config)
    print(f"Provider {args.name or args.tag} saved ({config.model}).")


async def cmd_config_remove_provider(args: argparse.Namespace, store: ConfigStore) -> None:
    if not store.remove_provider(args.name):
        msg = f"No provider named {args.name}"
        raise ConfigError(msg)
    print(f"Provider {args.name} removed.")


async def cmd_config_reset(args: argparse.Namespace, store: ConfigStore) -> None:
    store.clear()
    print("Configuration reset.")


async def cmd_config_add_agent(args: argparse.Namespace, store: ConfigStore) -> None:
    store.add_agent(LocalAgent(id=args.id, name=args.name, api_key=args.api_key))
    print(f"Agent {args.name} added.")


async def cmd_config_use_agent(args: argparse.Namespace, store: ConfigStore) -> None:
    store.set_current_agent(args.id)
    print(f"Using agent {args.id}.")


async def cmd_providers(args: argparse.Namespace, store: ConfigStore) -> None:
    for tag in available_providers():
        print(f"{tag}: {', '.join(get_available_models(tag))}")


# -- Parser ---------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="memoreum", description="Memoreum agent CLI")
    parser.add_argument("--config", help="Path to the config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("chat", help="Interactive chat with your agent")
    p.add_argument("--model", "-m", help="Model override")
    p.add_argument("--system", "-s", help="System prompt override")
    p.add_argument("--no-stream", action="store_true", help="Wait for full replies")
    p.set_defaults(handler=cmd_chat)

    p = sub.add_parser("ask", help="Ask a single question")
    p.add_argument("message")
    p.add_argument("--model", "-m", help="Model override")
    p.set_defaults(handler=cmd_ask)

    agent = sub.add_parser("agent", help="Manage agents").add_subparsers(
        dest="agent_command", required=True
    )
    p = agent.add_parser("register", help="Register a new agent")
    p.add_argument("name")
    p.set_defaults(handler=cmd_agent_register)
    agent.add_parser("info", help="Show the agent's remote profile").set_defaults(
        handler=cmd_agent_info
    )
    agent.add_parser("stats", help="Show agent statistics").set_defaults(handler=cmd_agent_stats)
    agent.add_parser("list", help="List local agents").set_defaults(handler=cmd_agent_list)
    p = agent.add_parser("remove", help="Forget a local agent")
    p.add_argument("id")
    p.set_defaults(handler=cmd_agent_remove)
    agent.add_parser("regenerate-key", help="Issue a new API key").set_defaults(
        handler=cmd_agent_regenerate_key
    )

    memory = sub.add_parser("memory", help="Manage memories").add_subparsers(
        dest="memory_command", required=True
    )
    p = memory.add_parser("search", help="Search marketplace memories")
    p.add_argument("query")
    p.add_argument("--limit", "-n", type=int, default=10)
    p.set_defaults(handler=cmd_memory_search)
    p = memory.add_parser("list", help="List your memories")
    p.add_argument("--limit", "-n", type=int, default=20)
    p.set_defaults(handler=cmd_memory_list)
    p = memory.add_parser("store", help="Store a new memory")
    p.add_argument("--title", required=True)
    p.add_argument("--content", required=True)
    p.add_argument("--type", default=MemoryType.KNOWLEDGE.value, choices=[t.value for t in MemoryType])
    p.add_argument("--tags", help="Comma-separated tags")
    p.add_argument("--public", action="store_true", help="Make it available for sale")
    p.set_defaults(handler=cmd_memory_store)
    p = memory.add_parser("get", help="Show a memory")
    p.add_argument("id")
    p.set_defaults(handler=cmd_memory_get)
    p = memory.add_parser("delete", help="Delete a memory")
    p.add_argument("id")
    p.set_defaults(handler=cmd_memory_delete)
    memory.add_parser("purchased", help="List purchased memories").set_defaults(
        handler=cmd_memory_purchased
    )
    memory.add_parser("categories", help="List memory categories").set_defaults(
        handler=cmd_memory_categories
    )

    market = sub.add_parser("market", help="Browse and trade memories").add_subparsers(
        dest="market_command", required=True
    )
    p = market.add_parser("browse", help="Browse listings")
    p.add_argument("--limit", "-n", type=int, default=20)
    p.set_defaults(handler=cmd_market_browse)
    p = market.add_parser("buy", help="Purchase a listing")
    p.add_argument("listing_id")
    p.set_defaults(handler=cmd_market_buy)
    p = market.add_parser("sell", help="List a memory for sale")
    p.add_argument("memory_id")
    p.add_argument("price_eth")
    p.set_defaults(handler=cmd_market_sell)
    p = market.add_parser("view", help="Show a listing")
    p.add_argument("listing_id")
    p.set_defaults(handler=cmd_market_view)
    market.add_parser("my-listings", help="List your listings").set_defaults(
        handler=cmd_market_my_listings
    )
    p = market.add_parser("remove", help="Deactivate a listing")
    p.add_argument("listing_id")
    p.set_defaults(handler=cmd_market_remove)

    wallet = sub.add_parser("wallet", help="Wallet and transactions").add_subparsers(
        dest="wallet_command", required=True
    )
    wallet.add_parser("info", help="Show wallet details").set_defaults(handler=cmd_wallet_info)
    wallet.add_parser("balance", help="Show wallet balance").set_defaults(
        handler=cmd_wallet_balance
    )
    p = wallet.add_parser("transactions", help="List transactions")
    p.add_argument("--type", "-t", default="all", choices=["all", "purchases", "sales"])
    p.set_defaults(handler=cmd_wallet_transactions)
    p = wallet.add_parser("transaction", help="Show one transaction")
    p.add_argument("id")
    p.set_defaults(handler=cmd_wallet_transaction)

    config = sub.add_parser("config", help="Local configuration").add_subparsers(
        dest="config_command", required=True
    )
    config.add_parser("show", help="Show configuration").set_defaults(handler=cmd_config_show)
    p = config.add_parser("set-key", help="Save the Memoreum API key")
    p.add_argument("key")
    p.set_defaults(handler=cmd_config_set_key)
    p = config.add_parser("set-network", help="Choose mainnet or testnet")
    p.add_argument("network", choices=["mainnet", "testnet"])
    p.set_defaults(handler=cmd_config_set_network)
    p = config.add_parser("url", help="Set a custom API base URL")
    p.add_argument("url")
    p.set_defaults(handler=cmd_config_url)
    p = config.add_parser("add-provider", help="Save an AI provider")
    p.add_argument("tag")
    p.add_argument("api_key", help="API key (base URL for ollama)")
    p.add_argument("--model", "-m")
    p.add_argument("--name", help="Entry name (default: the tag)")
    p.set_defaults(handler=cmd_config_add_provider)
    p = config.add_parser("remove-provider", help="Delete a saved AI provider")
    p.add_argument("name")
    p.set_defaults(handler=cmd_config_remove_provider)
    config.add_parser("reset", help="Delete all local configuration").set_defaults(
        handler=cmd_config_reset
    )
    p = config.add_parser("add-agent", help="Save a local agent")
    p.add_argument("id")
    p.add_argument("name")
    p.add_argument("api_key")
    p.set_defaults(handler=cmd_config_add_agent)
    p = config.add_parser("use-agent", help="Switch the current agent")
    p.add_argument("id")
    p.set_defaults(handler=cmd_config_use_agent)

    sub.add_parser("providers", help="List AI providers and models").set_defaults(
        handler=cmd_providers
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level),
    )
    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    try:
        store = ConfigStore(args.config or settings.config_path)
        asyncio.run(args.handler(args, store))
    except MemoreumError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
