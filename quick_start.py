#!/usr/bin/env python3
"""Quick-start verification for the village route tracking engine"""
import sys, subprocess

def section(title):
    print(f"\n{'='*70}\n  {title}\n{'='*70}\n")

def check_python():
    section("1. Python Version")
    v = sys.version_info
    print(f"   Python {v.major}.{v.minor}.{v.micro}")
    ok = v.major == 3 and v.minor >= 9
    print(f"   {'OK' if ok else 'Python 3.9+ required'}\n")
    return ok

def check_packages():
    section("2. Python Packages")
    ok = True
    for alias, name in {'numpy': 'numpy', 'requests': 'requests', 'googlemaps': 'googlemaps',
                        'shapely': 'shapely', 'pyproj': 'pyproj'}.items():
        try:
            mod = __import__(alias)
            print(f"   {name}: {getattr(mod, '__version__', 'ok')}")
        except ImportError:
            print(f"   {name}: MISSING")
            ok = False
    print()
    return ok

def check_providers():
    section("3. Routing Providers")
    from navigation import RouteProviderChain
    chain = RouteProviderChain()
    for status in chain.provider_status():
        state = 'configured' if status['configured'] else 'not configured (skipped)'
        print(f"   {status['provider']}: {state}")
    print(f"   {chain.fallback.name}: always available (fallback)\n")
    return True

def check_corridor():
    section("4. Corridor Strategy (shapely + pyproj)")
    from navigation import RouteCorridor
    from utils.village_data import VILLAGE_CENTER, VILLAGE_EXIT_COORDS
    corridor = RouteCorridor([VILLAGE_CENTER, VILLAGE_EXIT_COORDS])
    lon, lat = VILLAGE_CENTER
    ok = corridor.contains(lat, lon)
    print(f"   Village center inside corridor: {ok}\n")
    return ok

def check_offline_navigation():
    section("5. Offline Navigation")
    from navigation import DirectLineProvider, Position, RouteProviderChain, TrackingSession
    from utils.village_data import PUBLIC_POIS, exit_destination

    session = TrackingSession(provider_chain=RouteProviderChain(providers=[DirectLineProvider()]))
    lon, lat = PUBLIC_POIS['church']['coords']
    route = session.on_destination_set(exit_destination(), Position(lat, lon, 0.0))
    print(f"   Route: {route.source}, {route.distance_m:.0f}m")

    dest = exit_destination()
    status = session.on_position_update(Position(dest.latitude, dest.longitude, 5.0))
    print(f"   Instruction at exit: {status['instruction']['text']}")
    print(f"   Arrived: {status['arrived']}\n")
    return status['arrived']

def main():
    print("\n" + "=" * 70)
    print("  Village Route Tracking - Quick Start")
    print("=" * 70)

    checks = [
        ("Python", check_python), ("Packages", check_packages),
        ("Providers", check_providers), ("Corridor", check_corridor),
        ("Navigation", check_offline_navigation),
    ]

    results = {}
    for name, fn in checks:
        try:
            results[name] = fn()
        except Exception as e:
            print(f"   Error: {e}\n")
            results[name] = False

    section("Summary")
    for name, ok in results.items():
        print(f"   {'PASS' if ok else 'FAIL'} {name}")
    print()

    if not all(results.values()):
        print("   Fix errors above before running.\n")
        sys.exit(1)

    if '--full' in sys.argv:
        subprocess.run([sys.executable, '-m', 'simulation.walk_simulation', '--offline'])
    else:
        print("   All systems ready!\n")
        print("   python -m simulation.walk_simulation --offline   # Simulated walk")
        print("   python quick_start.py --full                     # Run after checks\n")

if __name__ == '__main__':
    main()
