import argparse
import statistics
import time

from abacx import Ability, Rule, Subject
from abacx.core.conditions import eq


def gen_rules(n: int) -> list:
    rules = [
        Rule(actions="read", subject_types="household", condition=eq("k", i))
        for i in range(n - 1)
    ]
    rules.append(Rule(actions="read", subject_types="household", inverted=True, condition=eq("k", -1)))
    return rules


def run(size: int, iters: int):
    t0 = time.perf_counter()
    ability = Ability(gen_rules(size))
    compile_ms = (time.perf_counter() - t0) * 1000.0
    # the matching rule sits in the middle, so half the candidates are scanned
    s = Subject(type="household", attrs={"k": size // 2})
    lat = []
    for _ in range(iters):
        t0 = time.perf_counter()
        d = ability.evaluate("read", s)
        lat.append((time.perf_counter() - t0) * 1000.0)
    return {
        "compile": compile_ms,
        "p50": statistics.median(lat),
        "avg": sum(lat) / len(lat),
        "p90": percentile(lat, 90),
        "allowed": d.allowed,
    }


def percentile(arr, p):
    arr2 = sorted(arr)
    k = int(round((p / 100.0) * (len(arr2) - 1)))
    return arr2[k]


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--sizes", type=int, nargs="+", default=[10, 50, 100, 500, 1000])
    ap.add_argument("--iters", type=int, default=200)
    args = ap.parse_args()
    print("size,compile_ms,avg_ms,p50_ms,p90_ms,allowed")
    for s in args.sizes:
        r = run(s, args.iters)
        print(f"{s},{r['compile']:.3f},{r['avg']:.3f},{r['p50']:.3f},{r['p90']:.3f},{r['allowed']}")


if __name__ == "__main__":
    main()
